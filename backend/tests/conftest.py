"""
Pytest configuration and shared fixtures for TradeDesk realtime tests.
"""

import asyncio
import json

import pytest

from tradedesk.realtime.dispatcher import UpdateDispatcher

_CLOSE = object()


class FakeConnection:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self):
        self.sent = []
        self.closed = False
        self._inbox = asyncio.Queue()

    async def send(self, text):
        if self.closed:
            raise ConnectionError("connection closed")
        self.sent.append(json.loads(text))

    async def close(self):
        if not self.closed:
            self.closed = True
            self._inbox.put_nowait(_CLOSE)

    def feed(self, frame):
        """Queue an inbound frame (dict is JSON-encoded, str passes through)."""
        self._inbox.put_nowait(json.dumps(frame) if isinstance(frame, dict) else frame)

    def drop(self):
        """Simulate the server closing the connection."""
        self.closed = True
        self._inbox.put_nowait(_CLOSE)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._inbox.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        return item

    def sent_of_type(self, frame_type):
        return [frame for frame in self.sent if frame["type"] == frame_type]


class FakeServer:
    """Connector that hands out FakeConnections and can be told to refuse."""

    def __init__(self):
        self.connections = []
        self.attempts = 0
        self.refuse = False
        self.refuse_next = 0

    async def connect(self, url):
        self.attempts += 1
        if self.refuse or self.refuse_next > 0:
            self.refuse_next = max(0, self.refuse_next - 1)
            raise OSError("connection refused")
        connection = FakeConnection()
        self.connections.append(connection)
        return connection

    @property
    def latest(self):
        return self.connections[-1]


class RecordingSleep:
    """Records requested reconnect delays without waiting them out."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)
        await asyncio.sleep(0)


async def settle(turns=20):
    """Let queued callbacks and tasks run."""
    for _ in range(turns):
        await asyncio.sleep(0)


@pytest.fixture
def server():
    return FakeServer()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def make_dispatcher(server, recording_sleep):
    """Factory for dispatchers wired to the fake server."""
    def factory(**overrides):
        options = {
            "url": "ws://testserver/ws",
            "connector": server.connect,
            "sleep": recording_sleep,
            "ping_interval": None,
        }
        options.update(overrides)
        return UpdateDispatcher(**options)
    return factory
