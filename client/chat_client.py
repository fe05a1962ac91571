# client/chat_client.py
# Terminal chat client for the relay server.
# Prints every message the server sends and submits each line typed on stdin as a chat message.

import asyncio
import json
import logging
import sys
import threading

import websockets
from websockets.protocol import State

import client_config

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')


def server_url(host=None, port=None, use_ssl=None):
    host = client_config.WEBSOCKET_HOST if host is None else host
    port = client_config.WEBSOCKET_PORT if port is None else port
    use_ssl = client_config.USE_SSL if use_ssl is None else use_ssl
    return f"{'wss' if use_ssl else 'ws'}://{host}:{port}"


def render_message(data):
    """
    Turns one decoded server message into a line of text for the terminal.
    Welcome and chat messages show their text; anything else is shown as raw JSON.

    Args:
        data: The decoded JSON value received from the server.

    Returns:
        str: The line to print.
    """
    if isinstance(data, dict):
        message_type = data.get("type")
        if message_type == "welcome":
            return f"[server] {data.get('message', '')}"
        if message_type == "chat":
            return str(data.get("message", ""))
    return json.dumps(data)


def build_chat_frame(text, device=None):
    """JSON text for a chat message carrying 'text', tagged with 'device' (defaults to DEVICE_NAME)."""
    device = client_config.DEVICE_NAME if device is None else device
    frame = {"type": "chat", "message": text}
    if device:
        frame["device"] = device
    return json.dumps(frame)


async def receive_loop(websocket, output=print):
    """Renders every frame from the server until the connection closes."""
    async for raw in websocket:
        if client_config.DEBUG:
            logging.info(f"Received: {raw!r}")
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logging.error(f"Parse error: {e}")
            continue
        output(render_message(data))


async def send_chat(websocket, text, device=None):
    """
    Sends one typed line if it is not blank and the connection is still open.
    Only the line terminator is removed; the text is otherwise sent as typed.

    Returns:
        bool: True if a frame was sent.
    """
    text = text.rstrip("\r\n")
    if not text.strip() or websocket.state is not State.OPEN:
        return False
    frame = build_chat_frame(text, device)
    if client_config.DEBUG:
        logging.info(f"Sending: {frame}")
    await websocket.send(frame)
    return True


def start_stdin_reader(loop, lines, read_line=None):
    """
    Pumps lines from stdin into the 'lines' queue from a daemon thread.
    An empty string marks end of input. The thread is never joined, so a
    blocked read cannot hold up interpreter exit.
    """
    read_line = read_line or sys.stdin.readline

    def pump():
        while True:
            line = read_line()
            try:
                loop.call_soon_threadsafe(lines.put_nowait, line)
            except RuntimeError:
                # Event loop already closed; the client has exited.
                return
            if not line:
                return

    thread = threading.Thread(target=pump, name="stdin-reader", daemon=True)
    thread.start()
    return thread


async def input_loop(websocket, lines):
    """Sends queued input lines until end of input, then closes the connection."""
    while websocket.state is State.OPEN:
        line = await lines.get()
        if not line:
            break
        await send_chat(websocket, line)
    await websocket.close()


async def run_client(url, lines=None):
    """
    Connects to the relay and runs until either the server closes the connection
    or input ends, whichever happens first.

    Args:
        url (str): ws:// or wss:// address of the relay.
        lines (asyncio.Queue, optional): Source of input lines. Defaults to a queue fed from stdin.
    """
    if lines is None:
        lines = asyncio.Queue()
        start_stdin_reader(asyncio.get_running_loop(), lines)

    async with websockets.connect(url) as websocket:
        logging.info(f"Connected to {url}")
        receiver = asyncio.create_task(receive_loop(websocket))
        sender = asyncio.create_task(input_loop(websocket, lines))
        done, pending = await asyncio.wait({receiver, sender}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        for task in done:
            error = task.exception()
            if isinstance(error, websockets.exceptions.ConnectionClosedError):
                logging.warning(f"Connection closed with error: {error}")
            elif error is not None and not isinstance(error, websockets.exceptions.ConnectionClosed):
                raise error
    logging.info("Disconnected")


def main():
    url = server_url()
    try:
        asyncio.run(run_client(url))
    except KeyboardInterrupt:
        logging.info("Client stopped manually via KeyboardInterrupt.")
    except websockets.exceptions.ConnectionClosed as e:
        logging.warning(f"Connection closed: {e}")
    except OSError as e:
        logging.error(f"Could not connect to {url}: {e}")


if __name__ == "__main__":
    main()
