"""Conversation Store - ordered message log per match with dual-path delivery.

Two independent paths feed the local log of a connected viewer:

- push: a store subscription on inserts into ``messages`` for the match
- reconciliation: a periodic pull of everything at or after the newest
  known message (minus an overlap window), or the full history when the
  log is empty

Both write through ``MessageLog.merge``, which is keyed by message id, so
a message seen on both paths is stored once. Push is best-effort; the
poll alone is enough to deliver every message.
"""

from __future__ import annotations

import asyncio
import bisect
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Iterator, List, Optional

from studyswipe.errors import NotParticipant, ReferenceGone, SendFailed, TransientIOError, ValidationError
from studyswipe.logger import logger
from studyswipe.matching import get_match
from studyswipe.profiles import find_profile
from studyswipe.schemas import Match, Message, Profile
from studyswipe.settings import Settings, get_settings
from studyswipe.store import ASCENDING, DESCENDING, Collections, Store
from studyswipe.tasks import PeriodicTask

MESSAGE_ORDER = [("created_at", ASCENDING), ("id", ASCENDING)]


async def send_message(store: Store, match_id: str, sender_id: str, text: str) -> Message:
    """Append a message to the match and return the stored record.

    Raises:
        ValidationError: Empty or oversized text
        ReferenceGone: The match no longer exists
        NotParticipant: The sender is not in the match
        SendFailed: The store rejected the write
    """
    text = (text or "").strip()
    if not text:
        raise ValidationError("Message text is empty")
    max_length = get_settings().message_max_length
    if len(text) > max_length:
        raise ValidationError(f"Message text exceeds {max_length} characters")

    match = await get_match(store, match_id)
    if match is None:
        raise ReferenceGone(f"Match {match_id} not found")
    if not match.has_participant(sender_id):
        raise NotParticipant("Not part of this match")

    try:
        doc = await store.insert_one(
            Collections.MESSAGES,
            {"match_id": match_id, "sender_id": sender_id, "text": text},
        )
    except TransientIOError as e:
        logger.error(f"Sending to match {match_id} failed: {e}")
        raise SendFailed("Failed to send message") from e

    # An unmatch may have landed between the participant check and the insert
    try:
        still_there = await get_match(store, match_id) is not None
    except TransientIOError as e:
        logger.warning(f"Could not re-check match {match_id} after send: {e}")
        still_there = True
    if not still_there:
        try:
            await store.delete_many(Collections.MESSAGES, {"id": doc["id"]})
        except TransientIOError as e:
            logger.error(f"Could not roll back message {doc['id']} of removed match {match_id}: {e}")
        raise ReferenceGone(f"Match {match_id} was removed while sending")

    return Message.model_validate(doc)


async def fetch_messages(store: Store, match_id: str, since: Optional[datetime] = None) -> List[Message]:
    """Messages of the match in order, optionally only those at or after ``since``."""
    filter = {"match_id": match_id}
    if since is not None:
        if since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)
        filter["created_at"] = {"$gte": since}
    docs = await store.find(Collections.MESSAGES, filter, sort=MESSAGE_ORDER)
    return [Message.model_validate(d) for d in docs]


async def latest_message(store: Store, match_id: str) -> Optional[Message]:
    doc = await store.find_one(
        Collections.MESSAGES,
        {"match_id": match_id},
        sort=[("created_at", DESCENDING), ("id", DESCENDING)],
    )
    return Message.model_validate(doc) if doc else None


class MessageLog:
    """Local cache of a match's messages, unique by id and sorted by time."""

    def __init__(self, messages: Iterable[Message] = ()):
        self._by_id = {}
        self._ordered: List[Message] = []
        self.merge(messages)

    def merge(self, messages: Iterable[Message]) -> List[Message]:
        """Add unseen messages and return them in order. Known ids are skipped."""
        added = []
        for message in messages:
            if message.id in self._by_id:
                continue
            self._by_id[message.id] = message
            bisect.insort(self._ordered, message, key=lambda m: m.sort_key)
            added.append(message)
        added.sort(key=lambda m: m.sort_key)
        return added

    @property
    def latest(self) -> Optional[Message]:
        return self._ordered[-1] if self._ordered else None

    @property
    def messages(self) -> List[Message]:
        return list(self._ordered)

    def clear(self) -> None:
        self._by_id.clear()
        self._ordered.clear()

    def __contains__(self, message_id: str) -> bool:
        return message_id in self._by_id

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._ordered))

    def __len__(self) -> int:
        return len(self._ordered)


class Conversation:
    """One viewer's live view of a match.

    ``on_merged`` fires once for every message added to the log, whoever
    sent it. ``on_new_message`` fires once for every merged message sent by
    the other participant. ``on_gone`` fires once when the match disappears.
    """

    def __init__(
        self,
        store: Store,
        match_id: str,
        viewer_id: str,
        on_new_message: Optional[Callable[[Message], None]] = None,
        *,
        on_merged: Optional[Callable[[Message], None]] = None,
        on_gone: Optional[Callable[[], None]] = None,
        settings: Optional[Settings] = None,
        log: Optional[MessageLog] = None,
    ):
        self.store = store
        self.match_id = match_id
        self.viewer_id = viewer_id
        self.on_new_message = on_new_message
        self.on_merged = on_merged
        self.on_gone = on_gone
        self.settings = settings or get_settings()
        self.log = log if log is not None else MessageLog()
        self.match: Optional[Match] = None
        self.other_profile: Optional[Profile] = None
        self.gone = False
        self._push_task: Optional[asyncio.Task] = None
        self._poller = PeriodicTask(
            f"reconcile:{match_id}",
            self._reconcile_cycle,
            self.settings.reconcile_interval,
            timeout=self.settings.request_timeout,
        )

    async def load(self) -> List[Message]:
        """Check access and load the full history as the baseline (no notifications)."""
        match = await get_match(self.store, self.match_id)
        if match is None:
            raise ReferenceGone(f"Match {self.match_id} not found")
        if not match.has_participant(self.viewer_id):
            raise NotParticipant("Not part of this match")
        self.match = match
        self.other_profile = await find_profile(self.store, match.other(self.viewer_id))
        self.log.merge(await fetch_messages(self.store, self.match_id))
        return self.log.messages

    def merge(self, messages: Iterable[Message]) -> List[Message]:
        added = self.log.merge(messages)
        for message in added:
            self._emit(self.on_merged, message)
            if message.sender_id != self.viewer_id:
                self._emit(self.on_new_message, message)
        return added

    def _emit(self, handler: Optional[Callable[[Message], None]], message: Message) -> None:
        if handler is None:
            return
        try:
            handler(message)
        except Exception as e:
            logger.error(f"Message handler failed for {message.id}: {e!r}")

    async def reconcile(self) -> List[Message]:
        """Pull anything the push path may have missed and merge it."""
        latest = self.log.latest
        since = None
        if latest is not None:
            since = latest.created_at - timedelta(seconds=self.settings.reconcile_overlap)
        return self.merge(await fetch_messages(self.store, self.match_id, since=since))

    async def _reconcile_cycle(self) -> None:
        if await get_match(self.store, self.match_id) is None:
            self._mark_gone()
            return
        await self.reconcile()

    def _mark_gone(self) -> None:
        if self.gone:
            return
        logger.info(f"Match {self.match_id} is gone, closing conversation for {self.viewer_id}")
        self.gone = True
        self.log.clear()
        self._poller.halt()
        if self._push_task is not None:
            self._push_task.cancel()
        if self.on_gone is not None:
            self.on_gone()

    async def _listen(self) -> None:
        try:
            async for doc in self.store.subscribe(Collections.MESSAGES, {"match_id": self.match_id}):
                self.merge([Message.model_validate(doc)])
        except TransientIOError as e:
            logger.warning(f"Realtime feed for match {self.match_id} unavailable, polling only: {e}")

    async def send(self, text: str) -> Message:
        message = await send_message(self.store, self.match_id, self.viewer_id, text)
        self.merge([message])
        return message

    async def start(self) -> None:
        if self.match is None:
            await self.load()
        if self._push_task is None or self._push_task.done():
            self._push_task = asyncio.get_running_loop().create_task(
                self._listen(), name=f"push:{self.match_id}"
            )
        self._poller.start()

    async def stop(self) -> None:
        task, self._push_task = self._push_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error(f"Realtime feed for match {self.match_id} crashed: {e!r}")
        await self._poller.stop()

    async def __aenter__(self) -> "Conversation":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()
