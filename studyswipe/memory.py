"""In-process implementation of the store port.

Keeps each collection as a dict of records and mirrors the MongoDB
semantics the core relies on: unique keys, the filter subset, sorting,
and an insert feed for subscriptions. Used by the test-suite and for
running the API without a database.
"""

from __future__ import annotations

import asyncio
import copy
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from bson import ObjectId

from studyswipe.errors import ConflictError, TransientIOError
from studyswipe.store import Collections, Document, Filter, Store

UNIQUE_KEYS: Dict[str, Tuple[str, ...]] = {
    Collections.PROFILES: ("id",),
    Collections.SWIPES: ("swiper_id", "swiped_id"),
    Collections.MATCHES: ("user1_id", "user2_id"),
    Collections.MESSAGES: ("id",),
}


def _match_condition(value: Any, condition: Any) -> bool:
    if not isinstance(condition, dict):
        return value == condition
    for op, operand in condition.items():
        if op == "$ne" and value == operand:
            return False
        if op == "$in" and value not in operand:
            return False
        if op == "$nin" and value in operand:
            return False
        if op in ("$gt", "$gte", "$lt", "$lte"):
            if value is None:
                return False
            if op == "$gt" and not value > operand:
                return False
            if op == "$gte" and not value >= operand:
                return False
            if op == "$lt" and not value < operand:
                return False
            if op == "$lte" and not value <= operand:
                return False
    return True


def matches_filter(doc: Document, filter: Filter) -> bool:
    """Evaluate the supported MongoDB filter subset against ``doc``."""
    for key, condition in filter.items():
        if key == "$or":
            if not any(matches_filter(doc, sub) for sub in condition):
                return False
        elif key == "$and":
            if not all(matches_filter(doc, sub) for sub in condition):
                return False
        elif not _match_condition(doc.get(key), condition):
            return False
    return True


class MemoryStore(Store):
    """Dict-backed store with failure injection for tests."""

    def __init__(self):
        self._data: Dict[str, Dict[str, Document]] = {}
        self._subscribers: List[Tuple[str, Filter, asyncio.Queue]] = []
        self._failures: Dict[Tuple[str, str], int] = {}
        self._last_timestamp: Optional[datetime] = None
        self.subscriptions_enabled = True

    def fail(self, operation: str, collection: str, times: int = 1) -> None:
        """Make the next ``times`` calls of ``operation`` on ``collection`` fail."""
        self._failures[(operation, collection)] = times

    def _maybe_fail(self, operation: str, collection: str) -> None:
        remaining = self._failures.get((operation, collection), 0)
        if remaining > 0:
            self._failures[(operation, collection)] = remaining - 1
            raise TransientIOError(f"Injected {operation} failure on {collection}")

    def _now(self) -> datetime:
        # Strictly increasing so that inserts keep a total order
        now = datetime.now(timezone.utc)
        if self._last_timestamp is not None and now <= self._last_timestamp:
            now = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = now
        return now

    def _collection(self, name: str) -> Dict[str, Document]:
        return self._data.setdefault(name, {})

    def records(self, collection: str) -> List[Document]:
        """Raw view of a collection, for assertions."""
        return [copy.deepcopy(d) for d in self._collection(collection).values()]

    async def insert_one(self, collection: str, document: Document) -> Document:
        self._maybe_fail("insert", collection)
        doc = copy.deepcopy(document)
        doc["id"] = str(doc.get("id") or ObjectId())
        doc.setdefault("created_at", self._now())

        rows = self._collection(collection)
        key_fields = UNIQUE_KEYS.get(collection, ("id",))
        key = tuple(doc.get(f) for f in key_fields)
        if doc["id"] in rows or any(tuple(r.get(f) for f in key_fields) == key for r in rows.values()):
            raise ConflictError(f"Duplicate {collection} record {key}")
        rows[doc["id"]] = doc

        for sub_collection, sub_filter, queue in list(self._subscribers):
            if sub_collection == collection and matches_filter(doc, sub_filter):
                queue.put_nowait(copy.deepcopy(doc))
        return copy.deepcopy(doc)

    async def find(self, collection, filter, *, sort=None, limit=None):
        self._maybe_fail("find", collection)
        docs = [d for d in self._collection(collection).values() if matches_filter(d, filter)]
        # Stable sorts applied from the least significant key
        for field, direction in reversed(list(sort or [])):
            docs.sort(key=lambda d: (d.get(field) is None, d.get(field)), reverse=direction < 0)
        if limit:
            docs = docs[:limit]
        return [copy.deepcopy(d) for d in docs]

    async def update_one(self, collection, filter, changes):
        self._maybe_fail("update", collection)
        for doc in self._collection(collection).values():
            if matches_filter(doc, filter):
                doc.update(copy.deepcopy(changes))
                return copy.deepcopy(doc)
        return None

    async def delete_many(self, collection, filter):
        self._maybe_fail("delete", collection)
        rows = self._collection(collection)
        doomed = [doc_id for doc_id, doc in rows.items() if matches_filter(doc, filter)]
        for doc_id in doomed:
            del rows[doc_id]
        return len(doomed)

    async def subscribe(self, collection: str, filter: Filter) -> AsyncIterator[Document]:
        if not self.subscriptions_enabled:
            raise TransientIOError("Realtime feed unavailable")
        queue: asyncio.Queue = asyncio.Queue()
        entry = (collection, filter, queue)
        self._subscribers.append(entry)
        try:
            while True:
                yield await queue.get()
        finally:
            self._subscribers.remove(entry)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
