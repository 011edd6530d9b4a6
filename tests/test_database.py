"""MongoStore change-stream handling, against a stand-in stream."""

import pytest
from pymongo.errors import ExecutionTimeout, PyMongoError

from studyswipe.database import MongoStore
from studyswipe.errors import TransientIOError
from studyswipe.store import Collections


class FakeChangeStream:
    """Replays ``events``; exceptions in the list are raised from ``next()``."""

    def __init__(self, events):
        self.events = list(events)
        self.alive = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.alive = False

    async def next(self):
        if not self.events:
            self.alive = False
            raise StopAsyncIteration
        event = self.events.pop(0)
        if isinstance(event, Exception):
            raise event
        return event


class FakeCollection:
    def __init__(self, stream):
        self.stream = stream
        self.pipeline = None

    async def watch(self, pipeline):
        self.pipeline = pipeline
        return self.stream


def make_store(events):
    collection = FakeCollection(FakeChangeStream(events))
    client = {"studyswipe": {Collections.MESSAGES: collection}}
    return MongoStore(client, "studyswipe"), collection


def inserted(doc_id, text):
    return {"operationType": "insert", "fullDocument": {"_id": doc_id, "match_id": "m", "text": text}}


class TestSubscribe:
    async def test_quiet_periods_keep_the_stream_open(self):
        store, collection = make_store([
            ExecutionTimeout("operation exceeded time limit", 50),
            inserted("a", "hi"),
            ExecutionTimeout("operation exceeded time limit", 50),
            ExecutionTimeout("operation exceeded time limit", 50),
            inserted("b", "still here"),
        ])

        docs = [doc async for doc in store.subscribe(Collections.MESSAGES, {"match_id": "m"})]

        assert [(d["id"], d["text"]) for d in docs] == [("a", "hi"), ("b", "still here")]
        assert collection.pipeline == [
            {"$match": {"operationType": "insert", "fullDocument.match_id": "m"}}
        ]

    async def test_other_errors_end_the_feed(self):
        store, _ = make_store([inserted("a", "hi"), PyMongoError("not a replica set")])
        received = []

        with pytest.raises(TransientIOError):
            async for doc in store.subscribe(Collections.MESSAGES, {"match_id": "m"}):
                received.append(doc["id"])

        assert received == ["a"]
