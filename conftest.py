import queue
import threading

import pytest

from filevault.app import create_app
from filevault.config import Settings


@pytest.fixture
def app():
    vault = create_app(Settings(backend="memory"))
    yield vault
    vault.close()


@pytest.fixture
def gateway(app):
    return app.gateway


@pytest.fixture
def users(app):
    """Three registered users: alice owns things, bob and carol receive shares."""
    return {name: app.accounts.register(name) for name in ("alice", "bob", "carol")}


@pytest.fixture
def alice(users):
    return users["alice"].user_id


@pytest.fixture
def bob(users):
    return users["bob"].user_id


@pytest.fixture
def carol(users):
    return users["carol"].user_id


class FakeTransport:
    """In-process stand-in for a websocket connection."""

    def __init__(self):
        self.inbox = queue.Queue()
        self.sent = queue.Queue()
        self.closed = threading.Event()

    def recv(self, timeout=None):
        if self.closed.is_set():
            raise ConnectionError("closed")
        try:
            item = self.inbox.get(timeout=timeout)
        except queue.Empty:
            raise TimeoutError
        if item is None:
            raise ConnectionError("client went away")
        return item

    def send(self, data):
        if self.closed.is_set():
            raise ConnectionError("closed")
        self.sent.put(data)

    def close(self):
        self.closed.set()


@pytest.fixture
def transport():
    return FakeTransport()
