"""
Realtime change feed.

Every committed insert/update/delete of a session row, a roster row, or a game
state row is published to the subscribers of that session. Changes are collected
while the ORM flushes and only published once the transaction commits, so a
rolled-back write is never seen by anyone.
"""

import asyncio
import itertools
import logging
import threading
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Callable

from sqlalchemy import event
from sqlalchemy.orm import Session

from .models import GameSession, GameStateRow, SessionPlayer

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"

_PENDING_KEY = "chugzone_pending_changes"


@dataclass
class ChangeEvent:
    table: str
    event_type: str  # INSERT | UPDATE | DELETE
    session_id: str
    record: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "table": self.table,
            "event_type": self.event_type,
            "session_id": self.session_id,
            "record": self.record,
        }


@dataclass(frozen=True)
class SubscriptionHandle:
    id: int
    session_id: str


class StateSyncChannel:
    """
    In-process pub/sub keyed by session id.
    Callbacks run on the publishing thread; they must be quick and must not block.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: dict[str, dict[int, Callable[[ChangeEvent], None]]] = {}
        self._ids = itertools.count(1)

    def subscribe(self, session_id: str, on_change: Callable[[ChangeEvent], None]) -> SubscriptionHandle:
        with self._lock:
            handle = SubscriptionHandle(id=next(self._ids), session_id=session_id)
            self._subscribers.setdefault(session_id, {})[handle.id] = on_change
        logger.debug("Subscribed %s to session %s", handle.id, session_id)
        return handle

    def unsubscribe(self, handle: SubscriptionHandle) -> None:
        """Release a subscription. Safe to call more than once."""
        with self._lock:
            subs = self._subscribers.get(handle.session_id)
            if not subs:
                return
            subs.pop(handle.id, None)
            if not subs:
                del self._subscribers[handle.session_id]
        logger.debug("Unsubscribed %s from session %s", handle.id, handle.session_id)

    def subscriber_count(self, session_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(session_id, {}))

    def publish(self, change: ChangeEvent) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(change.session_id, {}).values())
        for callback in callbacks:
            try:
                callback(change)
            except Exception:
                # One broken subscriber must not starve the others
                logger.exception("Subscriber failed on %s %s", change.table, change.event_type)

    @asynccontextmanager
    async def listen(self, session_id: str):
        """
        Subscribe for the lifetime of the block and yield an asyncio.Queue of ChangeEvents.
        Publishing may happen on worker threads, so events are handed to the loop thread-safely.
        """
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()

        def on_change(change: ChangeEvent) -> None:
            loop.call_soon_threadsafe(queue.put_nowait, change)

        handle = self.subscribe(session_id, on_change)
        try:
            yield queue
        finally:
            self.unsubscribe(handle)


channel = StateSyncChannel()


def _change_for(obj, event_type: str) -> ChangeEvent | None:
    if isinstance(obj, GameSession):
        session_id = obj.id
    elif isinstance(obj, (SessionPlayer, GameStateRow)):
        session_id = obj.session_id
    else:
        return None
    return ChangeEvent(
        table=obj.__tablename__,
        event_type=event_type,
        session_id=session_id,
        record=obj.to_dict(),
    )


@event.listens_for(Session, "after_flush")
def _collect_changes(session, flush_context):
    # new/dirty/deleted still describe what this flush wrote
    pending = session.info.setdefault(_PENDING_KEY, [])
    for obj in session.new:
        change = _change_for(obj, INSERT)
        if change:
            pending.append(change)
    for obj in session.dirty:
        if not session.is_modified(obj, include_collections=False):
            continue
        change = _change_for(obj, UPDATE)
        if change:
            pending.append(change)
    for obj in session.deleted:
        change = _change_for(obj, DELETE)
        if change:
            pending.append(change)


@event.listens_for(Session, "after_commit")
def _publish_changes(session):
    for change in session.info.pop(_PENDING_KEY, []):
        channel.publish(change)


@event.listens_for(Session, "after_rollback")
def _discard_changes(session):
    dropped = session.info.pop(_PENDING_KEY, [])
    if dropped:
        logger.debug("Dropped %d unpublished changes on rollback", len(dropped))
