"""Match Detector - turns two one-directional likes into one match.

A match is stored once per unordered pair with the participant ids in
canonical (lexicographic) order. Both clients of a mutual like may race to
insert it; the unique key makes the second insert a no-op.
"""

from __future__ import annotations

import asyncio
from typing import List, Optional, Tuple

from studyswipe.errors import ConflictError, ValidationError
from studyswipe.logger import logger
from studyswipe.schemas import Direction, Match
from studyswipe.settings import get_settings
from studyswipe.store import DESCENDING, Collections, Store


def canonical_pair(a: str, b: str) -> Tuple[str, str]:
    if a == b:
        raise ValidationError("A match needs two distinct users")
    return (a, b) if a < b else (b, a)


async def find_match(store: Store, a: str, b: str) -> Optional[Match]:
    user1_id, user2_id = canonical_pair(a, b)
    doc = await store.find_one(Collections.MATCHES, {"user1_id": user1_id, "user2_id": user2_id})
    return Match.model_validate(doc) if doc else None


async def get_match(store: Store, match_id: str) -> Optional[Match]:
    doc = await store.find_one(Collections.MATCHES, {"id": match_id})
    return Match.model_validate(doc) if doc else None


async def matches_for_user(store: Store, user_id: str) -> List[Match]:
    docs = await store.find(
        Collections.MATCHES,
        {"$or": [{"user1_id": user_id}, {"user2_id": user_id}]},
        sort=[("created_at", DESCENDING)],
    )
    return [Match.model_validate(d) for d in docs]


async def insert_match(store: Store, a: str, b: str) -> Optional[Match]:
    """Insert the canonical match for (a, b), or return the one already stored.

    Returns None when the stored match was unmatched before it could be read
    back, which callers treat as "not matched yet".
    """
    user1_id, user2_id = canonical_pair(a, b)
    try:
        doc = await store.insert_one(Collections.MATCHES, {"user1_id": user1_id, "user2_id": user2_id})
    except ConflictError:
        logger.debug(f"Match {user1_id}/{user2_id} already created by the other side")
        existing = await find_match(store, a, b)
        if existing is None:
            logger.info(f"Match {user1_id}/{user2_id} was unmatched before it could be read back")
        return existing
    logger.info(f"Match formed between {user1_id} and {user2_id}")
    return Match.model_validate(doc)


async def try_form_match(store: Store, actor_id: str, target_id: str) -> Optional[Match]:
    """Establish the match if the reciprocal like exists.

    Returns:
        The canonical Match, or None when the target has not liked the actor.
    """
    existing = await find_match(store, actor_id, target_id)
    if existing is not None:
        return existing

    reciprocal = await store.find_one(
        Collections.SWIPES,
        {"swiper_id": target_id, "swiped_id": actor_id, "direction": Direction.LIKE.value},
    )
    if reciprocal is None:
        return None
    return await insert_match(store, actor_id, target_id)


async def confirm_match(
    store: Store,
    actor_id: str,
    target_id: str,
    *,
    timeout: Optional[float] = None,
    initial_delay: Optional[float] = None,
    max_delay: Optional[float] = None,
) -> Optional[Match]:
    """Poll ``try_form_match`` with exponential backoff until found or the deadline.

    The reciprocal like may not be visible yet when the actor's own like
    lands. Not finding a match by the deadline means "not matched yet".
    """
    settings = get_settings()
    timeout = settings.match_confirm_timeout if timeout is None else timeout
    delay = settings.match_confirm_initial_delay if initial_delay is None else initial_delay
    max_delay = settings.match_confirm_max_delay if max_delay is None else max_delay

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        match = await try_form_match(store, actor_id, target_id)
        if match is not None:
            return match
        remaining = deadline - loop.time()
        if remaining <= 0:
            logger.debug(f"No match yet between {actor_id} and {target_id}")
            return None
        await asyncio.sleep(min(delay, remaining))
        delay = min(delay * 2, max_delay)
