"""Match inbox and the unread badge."""

from studyswipe.conversation import send_message
from studyswipe.inbox import UnreadCounter, count_unread, list_matches
from studyswipe.matching import insert_match
from studyswipe.store import Collections


class TestListMatches:
    async def test_summaries(self, store, match):
        await send_message(store, match.id, "alice", "first")
        last = await send_message(store, match.id, "bob", "second")

        summaries = await list_matches(store, "alice")

        assert len(summaries) == 1
        assert summaries[0].other_profile.id == "bob"
        assert summaries[0].last_message.id == last.id
        data = summaries[0].to_dict()
        assert data["match"]["id"] == match.id
        assert data["last_message"]["text"] == "second"

    async def test_newest_match_first(self, store, match):
        newer = await insert_match(store, "carol", "alice")

        summaries = await list_matches(store, "alice")

        assert [s.match.id for s in summaries] == [newer.id, match.id]
        assert summaries[0].last_message is None

    async def test_no_matches(self, store, users):
        assert await list_matches(store, "carol") == []


class TestCountUnread:
    async def test_counts_matches_where_other_spoke_last(self, store, match):
        other = await insert_match(store, "alice", "carol")
        await send_message(store, match.id, "bob", "ping")
        await send_message(store, other.id, "carol", "hello")
        await send_message(store, other.id, "alice", "hi back")

        assert await count_unread(store, "alice") == 1
        assert await count_unread(store, "bob") == 0
        assert await count_unread(store, "carol") == 1


class TestUnreadCounter:
    async def test_tracks_changes(self, store, match, fast_settings, eventually):
        changes = []
        counter = UnreadCounter(store, "alice", changes.append, settings=fast_settings)
        counter.start()
        try:
            await send_message(store, match.id, "bob", "ping")
            await eventually(lambda: counter.count == 1)
            await send_message(store, match.id, "alice", "pong")
            await eventually(lambda: counter.count == 0)
        finally:
            await counter.stop()

        assert changes == [1, 0]

    async def test_survives_failed_cycles(self, store, match, fast_settings, eventually):
        counter = UnreadCounter(store, "alice", settings=fast_settings)
        store.fail("find", Collections.MATCHES, times=3)
        counter.start()
        try:
            await send_message(store, match.id, "bob", "ping")
            await eventually(lambda: counter.count == 1)
        finally:
            await counter.stop()
