"""Match inbox - the user's matches with a preview, and the unread badge."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, List, Optional

from studyswipe.conversation import latest_message
from studyswipe.logger import logger
from studyswipe.matching import matches_for_user
from studyswipe.profiles import find_profile
from studyswipe.schemas import Match, Message, Profile
from studyswipe.settings import Settings, get_settings
from studyswipe.store import Store
from studyswipe.tasks import PeriodicTask


@dataclass
class MatchSummary:
    match: Match
    other_profile: Optional[Profile]
    last_message: Optional[Message] = None

    def to_dict(self) -> dict:
        return {
            "match": self.match.model_dump(mode="json"),
            "other_profile": self.other_profile.model_dump(mode="json") if self.other_profile else None,
            "last_message": self.last_message.model_dump(mode="json") if self.last_message else None,
        }


async def _summarize(store: Store, match: Match, user_id: str) -> MatchSummary:
    other, last = await asyncio.gather(
        find_profile(store, match.other(user_id)),
        latest_message(store, match.id),
    )
    return MatchSummary(match=match, other_profile=other, last_message=last)


async def list_matches(store: Store, user_id: str) -> List[MatchSummary]:
    """Matches of ``user_id``, newest first, with the other profile and last message."""
    matches = await matches_for_user(store, user_id)
    return list(await asyncio.gather(*(_summarize(store, m, user_id) for m in matches)))


async def count_unread(store: Store, user_id: str) -> int:
    """Number of matches whose latest message came from the other participant."""
    matches = await matches_for_user(store, user_id)
    latest = await asyncio.gather(*(latest_message(store, m.id) for m in matches))
    return sum(1 for msg in latest if msg is not None and msg.sender_id != user_id)


class UnreadCounter:
    """Background poll of ``count_unread`` for one signed-in user."""

    def __init__(
        self,
        store: Store,
        user_id: str,
        on_change: Optional[Callable[[int], None]] = None,
        *,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.store = store
        self.user_id = user_id
        self.on_change = on_change
        self.count = 0
        self._task = PeriodicTask(
            f"unread:{user_id}",
            self.refresh,
            settings.unread_poll_interval,
            timeout=settings.request_timeout,
        )

    async def refresh(self) -> int:
        count = await count_unread(self.store, self.user_id)
        if count != self.count:
            logger.debug(f"Unread count for {self.user_id}: {self.count} -> {count}")
            self.count = count
            if self.on_change is not None:
                self.on_change(count)
        return count

    def start(self) -> None:
        self._task.start()

    async def stop(self) -> None:
        await self._task.stop()
