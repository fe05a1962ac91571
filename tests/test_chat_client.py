"""Tests for the terminal chat client."""

import asyncio
import json

import pytest
import websockets
from websockets.protocol import State

import chat_client
import client_config
import server
from conftest import FakeConnection, create_mock_websocket, sent_payloads, wait_for_connection_count


class TestServerUrl:
    """Tests for server_url."""

    def test_defaults_from_config(self, monkeypatch):
        monkeypatch.setattr(client_config, "WEBSOCKET_HOST", "example.org")
        monkeypatch.setattr(client_config, "WEBSOCKET_PORT", 9000)
        monkeypatch.setattr(client_config, "USE_SSL", False)

        assert chat_client.server_url() == "ws://example.org:9000"

    def test_ssl(self):
        assert chat_client.server_url("localhost", 8443, use_ssl=True) == "wss://localhost:8443"


class TestRenderMessage:
    """Tests for render_message."""

    def test_welcome(self):
        line = chat_client.render_message({"type": "welcome", "message": "Connected to WebSocket Server!"})

        assert line == "[server] Connected to WebSocket Server!"

    def test_chat(self):
        assert chat_client.render_message({"type": "chat", "message": "hello (from web)"}) == "hello (from web)"

    @pytest.mark.parametrize(
        "data, expected",
        [
            ({"type": "clock", "message": "12:00"}, '{"type": "clock", "message": "12:00"}'),
            ({"message": "x"}, '{"message": "x"}'),
            ([1], "[1]"),
        ],
    )
    def test_other_types_shown_as_json(self, data, expected):
        assert chat_client.render_message(data) == expected


class TestBuildChatFrame:
    """Tests for build_chat_frame."""

    def test_uses_configured_device(self, monkeypatch):
        monkeypatch.setattr(client_config, "DEVICE_NAME", "laptop")

        frame = json.loads(chat_client.build_chat_frame("hi"))

        assert frame == {"type": "chat", "message": "hi", "device": "laptop"}

    def test_no_device(self):
        frame = json.loads(chat_client.build_chat_frame("hi", device=""))

        assert frame == {"type": "chat", "message": "hi"}


class TestSendChat:
    """Tests for send_chat."""

    @pytest.mark.asyncio
    async def test_sends_text_as_typed(self):
        ws = create_mock_websocket()

        assert await chat_client.send_chat(ws, "  hello  there \r\n", device="web") is True
        assert sent_payloads(ws) == [{"type": "chat", "message": "  hello  there ", "device": "web"}]

    @pytest.mark.asyncio
    async def test_blank_line_not_sent(self):
        ws = create_mock_websocket()

        assert await chat_client.send_chat(ws, "   \n") is False
        ws.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_not_sent_when_closed(self):
        ws = create_mock_websocket(state=State.CLOSED)

        assert await chat_client.send_chat(ws, "hello") is False
        ws.send.assert_not_awaited()


class TestLoops:
    """Tests for receive_loop, input_loop and the stdin reader."""

    @pytest.mark.asyncio
    async def test_receive_loop_renders_and_skips_bad_frames(self):
        ws = FakeConnection(
            frames=[
                '{"type": "welcome", "message": "hi there"}',
                "{broken",
                '{"type": "clock", "message": "12:00"}',
                '{"type": "chat", "message": "hello"}',
            ]
        )
        lines = []

        await chat_client.receive_loop(ws, output=lines.append)

        assert lines == ["[server] hi there", '{"type": "clock", "message": "12:00"}', "hello"]

    @pytest.mark.asyncio
    async def test_input_loop_sends_until_eof(self, monkeypatch):
        monkeypatch.setattr(client_config, "DEVICE_NAME", "terminal")
        ws = create_mock_websocket()
        lines = asyncio.Queue()
        for line in ["first\n", "\n", "second\n", ""]:
            lines.put_nowait(line)

        await chat_client.input_loop(ws, lines)

        assert [p["message"] for p in sent_payloads(ws)] == ["first", "second"]
        ws.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stdin_reader_feeds_queue_until_eof(self):
        source = iter(["one\n", "two\n", ""])
        lines = asyncio.Queue()

        thread = chat_client.start_stdin_reader(asyncio.get_running_loop(), lines, read_line=lambda: next(source))

        received = [await asyncio.wait_for(lines.get(), 2) for _ in range(3)]
        assert received == ["one\n", "two\n", ""]
        assert thread.daemon is True


class TestAgainstRelay:
    """The client against a live relay."""

    @pytest.mark.asyncio
    async def test_round_trip(self, relay_url, monkeypatch):
        monkeypatch.setattr(client_config, "DEVICE_NAME", "terminal")
        async with websockets.connect(relay_url) as ws:
            welcome = json.loads(await asyncio.wait_for(ws.recv(), 2))
            assert chat_client.render_message(welcome) == "[server] Connected to WebSocket Server!"

            await chat_client.send_chat(ws, "hello")

            reply = json.loads(await asyncio.wait_for(ws.recv(), 2))
            assert chat_client.render_message(reply) == "hello (from terminal)"

    @pytest.mark.asyncio
    async def test_run_client_returns_when_server_closes(self, caplog):
        lines = asyncio.Queue()
        async with server.serve("127.0.0.1", 0) as ws_server:
            port = ws_server.sockets[0].getsockname()[1]
            with caplog.at_level("INFO"):
                client_task = asyncio.create_task(chat_client.run_client(f"ws://127.0.0.1:{port}", lines))
                await wait_for_connection_count(1)

                ws_server.close()
                await asyncio.wait_for(client_task, 5)

        assert "Disconnected" in caplog.text

    @pytest.mark.asyncio
    async def test_run_client_returns_at_end_of_input(self, relay_url):
        lines = asyncio.Queue()
        lines.put_nowait("bye\n")
        lines.put_nowait("")

        await asyncio.wait_for(chat_client.run_client(relay_url, lines), 5)

        await wait_for_connection_count(0)
