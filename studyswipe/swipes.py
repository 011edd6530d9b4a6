"""Swipe Recorder - one like or pass per ordered (actor, target) pair."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Union

from studyswipe.errors import ConflictError, ReferenceGone, ValidationError
from studyswipe.logger import logger
from studyswipe.matching import confirm_match
from studyswipe.schemas import Direction, Match, Swipe
from studyswipe.store import Collections, Store


@dataclass
class SwipeOutcome:
    """Result of a swipe as seen by the acting client."""
    swipe: Optional[Swipe] = None
    match: Optional[Match] = None
    duplicate: bool = False

    @property
    def matched(self) -> bool:
        return self.match is not None


async def record_swipe(
    store: Store,
    actor_id: str,
    target_id: str,
    direction: Union[Direction, str],
) -> Swipe:
    """Persist a swipe. Does not look for reciprocity.

    Raises:
        ValidationError: Self-swipe or unknown direction
        ReferenceGone: The target has no profile
        ConflictError: The actor already swiped on the target
    """
    if actor_id == target_id:
        raise ValidationError("Cannot swipe on yourself")
    try:
        direction = Direction(direction)
    except ValueError as e:
        raise ValidationError(f"Unknown swipe direction {direction!r}") from e

    target = await store.find_one(Collections.PROFILES, {"id": target_id})
    if target is None:
        raise ReferenceGone(f"Profile {target_id} not found")

    doc = await store.insert_one(
        Collections.SWIPES,
        {"swiper_id": actor_id, "swiped_id": target_id, "direction": direction.value},
    )
    return Swipe.model_validate(doc)


async def swipe(
    store: Store,
    actor_id: str,
    target_id: str,
    direction: Union[Direction, str],
    *,
    confirm_timeout: Optional[float] = None,
) -> SwipeOutcome:
    """Record a swipe and, on a like, wait briefly for the match to settle.

    A duplicate swipe is not an error: the outcome is flagged and the
    caller moves on to the next candidate.
    """
    try:
        recorded = await record_swipe(store, actor_id, target_id, direction)
    except ConflictError:
        logger.info(f"{actor_id} already swiped on {target_id}, skipping")
        return SwipeOutcome(duplicate=True)

    outcome = SwipeOutcome(swipe=recorded)
    if recorded.is_like:
        outcome.match = await confirm_match(store, actor_id, target_id, timeout=confirm_timeout)
    return outcome


async def swiped_ids(store: Store, viewer_id: str) -> List[str]:
    """Ids of every profile the viewer has swiped on, either direction."""
    docs = await store.find(Collections.SWIPES, {"swiper_id": viewer_id})
    return [d["swiped_id"] for d in docs]


async def delete_swipes_between(store: Store, a: str, b: str) -> int:
    """Remove both directional swipes between ``a`` and ``b``."""
    return await store.delete_many(
        Collections.SWIPES,
        {"$or": [
            {"swiper_id": a, "swiped_id": b},
            {"swiper_id": b, "swiped_id": a},
        ]},
    )
