"""
Notification Bus

Keeps live connections per user and fans events out to each of them.
Delivery is fire-and-forget: a user with no live connection simply misses
the event, since stores remain the source of truth and an event is only a
hint to refresh. Each connection has its own bounded queue so one slow
client cannot hold up publication to anyone else.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional
import itertools
import logging
import queue
import threading
import time

from filevault.storage.models import UserId
from .events import EventType, Message

logger = logging.getLogger(__name__)

_ids = itertools.count(1)


class Connection:
    """Handle for one live session channel of a user."""

    def __init__(self, user_id: UserId, queue_size: int, clock: Callable[[], float]):
        self.id = next(_ids)
        self.user_id = user_id
        self._queue: "queue.Queue[Message]" = queue.Queue(maxsize=queue_size)
        self._clock = clock
        self.last_seen = clock()
        self.alive = True
        self.dropped = 0

    def deliver(self, message: Message) -> bool:
        if not self.alive:
            return False
        try:
            self._queue.put_nowait(message)
        except queue.Full:
            self.dropped += 1
            logger.warning("connection %s of user %r is backed up, dropped %s", self.id, self.user_id, message.type)
            return False
        return True

    def next_message(self, timeout: Optional[float] = None) -> Optional[Message]:
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def pending(self) -> List[Message]:
        """Drain and return everything queued so far."""
        out = []
        while True:
            try:
                out.append(self._queue.get_nowait())
            except queue.Empty:
                return out

    def touch(self) -> None:
        self.last_seen = self._clock()

    def __repr__(self) -> str:
        return f"<Connection {self.id} user={self.user_id!r} alive={self.alive}>"


class ConnectionRegistry:
    """Map of user id -> live connections, owned by one bus instance."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_user: Dict[UserId, Dict[int, Connection]] = {}

    def add(self, conn: Connection) -> None:
        with self._lock:
            self._by_user.setdefault(conn.user_id, {})[conn.id] = conn

    def remove(self, conn: Connection) -> bool:
        with self._lock:
            conns = self._by_user.get(conn.user_id)
            if not conns or conn.id not in conns:
                return False
            del conns[conn.id]
            if not conns:
                del self._by_user[conn.user_id]
            return True

    def for_user(self, user_id: UserId) -> List[Connection]:
        with self._lock:
            return list(self._by_user.get(user_id, {}).values())

    def all(self) -> List[Connection]:
        with self._lock:
            return [c for conns in self._by_user.values() for c in conns.values()]

    def __len__(self) -> int:
        with self._lock:
            return sum(len(conns) for conns in self._by_user.values())


class NotificationBus:
    def __init__(
        self,
        registry: Optional[ConnectionRegistry] = None,
        *,
        queue_size: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.registry = registry if registry is not None else ConnectionRegistry()
        self.queue_size = queue_size
        self._clock = clock

    def register(self, user_id: UserId) -> Connection:
        conn = Connection(user_id, self.queue_size, self._clock)
        self.registry.add(conn)
        logger.info("connection %s registered for user %r", conn.id, user_id)
        return conn

    def unregister(self, conn: Connection) -> None:
        conn.alive = False
        if self.registry.remove(conn):
            logger.info("connection %s of user %r unregistered", conn.id, conn.user_id)

    def publish(self, user_id: UserId, event_type: str, payload: Optional[Dict[str, Any]] = None) -> int:
        """Queue an event on every live connection of `user_id`; returns how many accepted it."""
        message = Message(type=event_type, data=dict(payload or {}))
        delivered = 0
        for conn in self.registry.for_user(user_id):
            if conn.deliver(message):
                delivered += 1
        logger.debug("%s for user %r delivered to %d connection(s)", event_type, user_id, delivered)
        return delivered

    def heartbeat(self, conn: Connection) -> None:
        conn.touch()

    def ping_all(self) -> int:
        ping = Message(type=EventType.PING, data={})
        return sum(1 for conn in self.registry.all() if conn.deliver(ping))

    def sweep(self, timeout: float) -> List[Connection]:
        """Unregister connections that have not answered within `timeout` seconds."""
        now = self._clock()
        stale = [c for c in self.registry.all() if now - c.last_seen > timeout]
        for conn in stale:
            logger.warning("connection %s of user %r timed out", conn.id, conn.user_id)
            self.unregister(conn)
        return stale

    def connections_for(self, user_id: UserId) -> List[Connection]:
        return self.registry.for_user(user_id)

    def close(self) -> None:
        for conn in self.registry.all():
            self.unregister(conn)
