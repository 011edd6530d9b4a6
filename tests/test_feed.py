"""Candidate Feed."""

import pytest

from studyswipe.errors import TransientIOError
from studyswipe.feed import next_candidates
from studyswipe.profiles import create_profile
from studyswipe.schemas import Direction
from studyswipe.store import Collections
from studyswipe.swipes import record_swipe
from studyswipe.unmatch import unmatch


def ids(profiles):
    return [p.id for p in profiles]


class TestNextCandidates:
    async def test_newest_first_without_viewer(self, store, users):
        feed = await next_candidates(store, "alice")

        assert ids(feed) == ["carol", "bob"]

    async def test_swiped_profiles_excluded_either_direction(self, store, users):
        await record_swipe(store, "alice", "bob", Direction.LIKE)
        await record_swipe(store, "alice", "carol", Direction.PASS)

        assert await next_candidates(store, "alice") == []

    async def test_incoming_swipes_do_not_hide_profiles(self, store, users):
        await record_swipe(store, "bob", "alice", Direction.PASS)

        assert "bob" in ids(await next_candidates(store, "alice"))

    async def test_limit(self, store, users):
        for i in range(5):
            await create_profile(store, f"user{i}", f"User {i}", subjects=["Art"])

        feed = await next_candidates(store, "alice", limit=3)

        assert ids(feed) == ["user4", "user3", "user2"]

    async def test_explicit_exclusions_still_exclude_viewer(self, store, users):
        feed = await next_candidates(store, "alice", exclude_ids=["carol"])

        assert ids(feed) == ["bob"]

    async def test_empty_feed_is_not_an_error(self, store):
        await create_profile(store, "solo", "Solo", subjects=["Art"])

        assert await next_candidates(store, "solo") == []

    async def test_fetch_failure_is_raised(self, store, users):
        store.fail("find", Collections.PROFILES)

        with pytest.raises(TransientIOError):
            await next_candidates(store, "alice")

    async def test_profile_returns_after_unmatch(self, store, match):
        assert "bob" not in ids(await next_candidates(store, "alice"))
        assert "alice" not in ids(await next_candidates(store, "bob"))

        await unmatch(store, match.id, "alice")

        assert "bob" in ids(await next_candidates(store, "alice"))
        assert "alice" in ids(await next_candidates(store, "bob"))

    async def test_like_and_pass_hide_both_sides(self, store, users):
        await record_swipe(store, "alice", "bob", Direction.LIKE)
        await record_swipe(store, "bob", "alice", Direction.PASS)

        assert "bob" not in ids(await next_candidates(store, "alice"))
        assert "alice" not in ids(await next_candidates(store, "bob"))
        assert store.records(Collections.MATCHES) == []
