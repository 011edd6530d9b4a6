"""Unmatch Coordinator - tears a match down and restores feed visibility.

Order matters: messages, then the match row, then the swipes. The first
two steps are critical and reported; swipe cleanup is best-effort since a
stale swipe only delays the pair reappearing in each other's feed.
"""

from __future__ import annotations

from dataclasses import dataclass

from studyswipe.errors import NotParticipant, ReferenceGone, TransientIOError, UnmatchIncomplete
from studyswipe.logger import logger
from studyswipe.matching import get_match
from studyswipe.store import Collections, Store
from studyswipe.swipes import delete_swipes_between


@dataclass
class UnmatchResult:
    match_id: str
    messages_deleted: int
    swipes_cleared: bool


async def unmatch(store: Store, match_id: str, requester_id: str) -> UnmatchResult:
    """Dissolve the match on behalf of either participant.

    Raises:
        ReferenceGone: The match does not exist (already unmatched)
        NotParticipant: The requester is not in the match
        TransientIOError: Deleting the messages failed; nothing was removed
        UnmatchIncomplete: Messages are gone but the match row is not
    """
    match = await get_match(store, match_id)
    if match is None:
        raise ReferenceGone(f"Match {match_id} not found")
    if not match.has_participant(requester_id):
        raise NotParticipant("Not part of this match")
    other_id = match.other(requester_id)

    try:
        deleted = await store.delete_many(Collections.MESSAGES, {"match_id": match_id})
    except TransientIOError as e:
        logger.error(f"Failed to delete messages of match {match_id}: {e}")
        raise

    try:
        await store.delete_many(Collections.MATCHES, {"id": match_id})
    except TransientIOError as e:
        logger.error(f"Failed to delete match {match_id} after deleting its messages: {e}")
        raise UnmatchIncomplete(f"Failed to delete match {match_id}, please retry") from e

    # Sends that raced the teardown
    try:
        deleted += await store.delete_many(Collections.MESSAGES, {"match_id": match_id})
    except TransientIOError as e:
        logger.warning(f"Could not sweep late messages of match {match_id}: {e}")

    swipes_cleared = True
    try:
        await delete_swipes_between(store, requester_id, other_id)
    except TransientIOError as e:
        swipes_cleared = False
        logger.warning(f"Could not delete swipes between {requester_id} and {other_id}: {e}")

    logger.info(f"{requester_id} unmatched {other_id} (match {match_id}, {deleted} messages)")
    return UnmatchResult(match_id=match_id, messages_deleted=deleted, swipes_cleared=swipes_cleared)
