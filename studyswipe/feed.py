"""Candidate Feed - profiles the viewer has not decided on yet, newest first."""

from __future__ import annotations

from typing import Iterable, List, Optional

from studyswipe.logger import logger
from studyswipe.schemas import Profile
from studyswipe.settings import get_settings
from studyswipe.store import DESCENDING, Collections, Store
from studyswipe.swipes import swiped_ids


async def next_candidates(
    store: Store,
    viewer_id: str,
    exclude_ids: Optional[Iterable[str]] = None,
    limit: Optional[int] = None,
) -> List[Profile]:
    """Return up to ``limit`` profiles outside ``exclude_ids``.

    ``exclude_ids`` defaults to every profile the viewer swiped on. The
    viewer is always excluded. An empty list means "no more candidates".
    """
    if exclude_ids is None:
        exclude_ids = await swiped_ids(store, viewer_id)
    excluded = sorted(set(exclude_ids) | {viewer_id})
    limit = limit or get_settings().feed_page_size

    docs = await store.find(
        Collections.PROFILES,
        {"id": {"$nin": excluded}},
        sort=[("created_at", DESCENDING)],
        limit=limit,
    )
    logger.debug(f"Feed for {viewer_id}: {len(docs)} candidates, {len(excluded)} excluded")
    return [Profile.model_validate(d) for d in docs]
