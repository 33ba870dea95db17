"""
Per-connection session handling.

`ConnectionSession` drives one long-lived client channel: a receive loop
that handles AUTHENTICATE/PING/PONG frames, and a sender thread that
drains the connection's queue onto the transport. The transport is any
object with ``send(str)``, ``recv(timeout) -> str`` and ``close()``, which
matches a `websockets.sync` connection.
"""

from __future__ import annotations

from typing import Optional
import logging
import threading

from .bus import Connection, NotificationBus
from .events import EventType, Message

logger = logging.getLogger(__name__)


class ConnectionSession:
    def __init__(self, bus: NotificationBus, transport, *, poll_interval: float = 0.5):
        self.bus = bus
        self.transport = transport
        self.poll_interval = poll_interval
        self.connection: Optional[Connection] = None
        self._stop = threading.Event()
        self._sender: Optional[threading.Thread] = None

    def serve(self) -> None:
        """Run the receive loop until the client goes away or the bus drops us."""
        try:
            while not self._stop.is_set():
                if self.connection is not None and not self.connection.alive:
                    break
                try:
                    raw = self.transport.recv(timeout=self.poll_interval)
                except TimeoutError:
                    continue
                except Exception as exc:  # transport closed or broken
                    logger.debug("receive loop ended: %s", exc)
                    break
                if raw is None:
                    break
                self._handle(raw)
        finally:
            self.stop()

    def _handle(self, raw) -> None:
        try:
            frame = Message.from_json(raw)
        except ValueError as exc:
            logger.warning("ignoring malformed frame: %s", exc)
            return

        if frame.type == EventType.AUTHENTICATE:
            self._authenticate(frame.data.get("userId"))
        elif self.connection is None:
            logger.debug("ignoring %s before authentication", frame.type)
        elif frame.type == EventType.PONG:
            self.bus.heartbeat(self.connection)
        elif frame.type == EventType.PING:
            self.bus.heartbeat(self.connection)
            self.connection.deliver(Message(type=EventType.PONG))
        else:
            logger.debug("ignoring unknown frame %s", frame.type)

    def _authenticate(self, user_id) -> None:
        if user_id is None:
            logger.warning("AUTHENTICATE frame without userId")
            return
        if self.connection is not None:
            if self.connection.user_id == user_id:
                self.connection.deliver(Message(type=EventType.AUTHENTICATED, data={"success": True}))
                return
            self.bus.unregister(self.connection)
        self.connection = self.bus.register(user_id)
        self.connection.deliver(Message(type=EventType.AUTHENTICATED, data={"success": True}))
        if self._sender is None:
            self._sender = threading.Thread(target=self._send_loop, name="filevault-sender", daemon=True)
            self._sender.start()

    def _send_loop(self) -> None:
        while not self._stop.is_set():
            conn = self.connection
            if conn is None or not conn.alive:
                break
            message = conn.next_message(timeout=self.poll_interval)
            if message is None:
                continue
            try:
                self.transport.send(message.to_json())
            except Exception as exc:
                logger.info("send to connection %s failed: %s", conn.id, exc)
                self.bus.unregister(conn)
                break
        self._stop.set()

    def stop(self) -> None:
        self._stop.set()
        if self.connection is not None:
            self.bus.unregister(self.connection)
        sender = self._sender
        if sender is not None and sender is not threading.current_thread():
            sender.join(timeout=self.poll_interval * 4)
        try:
            self.transport.close()
        except Exception as exc:
            logger.debug("transport close failed: %s", exc)


class LivenessMonitor:
    """Background probe: pings every connection and sweeps the silent ones."""

    def __init__(self, bus: NotificationBus, interval: float = 30.0, timeout: float = 90.0):
        self.bus = bus
        self.interval = interval
        self.timeout = timeout
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run_once(self):
        self.bus.ping_all()
        return self.bus.sweep(self.timeout)

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            self.run_once()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="filevault-liveness", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self.interval + 1)
            self._thread = None
