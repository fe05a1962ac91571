"""
Shared fixtures for the chat relay tests.

Provides fake connections for unit tests and a live relay server bound to an
ephemeral port for end-to-end tests.
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from websockets.protocol import State

import server


class FakeConnection:
    """
    In-memory stand-in for a server-side WebSocket connection.

    Yields the given frames when iterated, then either raises `error` or
    finishes as a clean close.
    """

    def __init__(self, frames=(), error=None, port=5000):
        self.frames = list(frames)
        self.error = error
        self.state = State.OPEN
        self.remote_address = ("127.0.0.1", port)
        self.sent = []

    async def send(self, payload):
        self.sent.append(json.loads(payload))

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for frame in self.frames:
            yield frame
        self.state = State.CLOSED
        if self.error is not None:
            raise self.error


def create_mock_websocket(state=State.OPEN, port=5000):
    """
    Creates a mock WebSocket connection with an awaitable send().

    Returns:
        MagicMock: Mocked connection
    """
    ws_mock = MagicMock()
    ws_mock.state = state
    ws_mock.send = AsyncMock()
    ws_mock.close = AsyncMock()
    ws_mock.remote_address = ("127.0.0.1", port)
    return ws_mock


def sent_payloads(ws_mock):
    """Decodes every payload passed to a mock connection's send()."""
    return [json.loads(call.args[0]) for call in ws_mock.send.await_args_list]


async def wait_for_connection_count(expected, timeout=2.0):
    """Polls the shared registry until it holds `expected` connections."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while len(server.CONNECTIONS) != expected:
        if loop.time() > deadline:
            raise AssertionError(f"expected {expected} connections, have {len(server.CONNECTIONS)}")
        await asyncio.sleep(0.01)


@pytest.fixture(autouse=True)
def clean_registry():
    """Empties the shared connection registry around every test."""
    server.CONNECTIONS.clear()
    yield
    server.CONNECTIONS.clear()


@pytest.fixture
def registry():
    return server.ConnectionRegistry()


@pytest_asyncio.fixture
async def relay_url():
    """Runs the relay on 127.0.0.1 with an OS-assigned port and yields its ws:// URL."""
    async with server.serve("127.0.0.1", 0) as ws_server:
        port = ws_server.sockets[0].getsockname()[1]
        yield f"ws://127.0.0.1:{port}"
