# server/server.py
# This file contains the core logic for the chat relay WebSocket server.
# Responsibilities include:
# - Tracking the set of open client connections.
# - Sending a private welcome message to each new client.
# - Parsing inbound JSON frames and routing them on their 'type' field.
# - Broadcasting chat messages (echoed, device-tagged, or the server clock) to every open client.
# - Setting up SSL context for Secure WebSockets (WSS) if configured.

import asyncio          # For asynchronous operations (coroutines, event loop, tasks).
import websockets       # The WebSocket library used for server implementation.
import logging          # For logging server events, warnings, and errors.
import ssl              # For creating SSL contexts for WSS.
from datetime import datetime
from websockets.protocol import State
import config           # Imports server configuration (HOST, PORT, SSL settings, DEBUG).
from messages import (
    ChatBroadcast,
    ChatMessage,
    MessageParseError,
    WelcomeMessage,
    parse_message,
    serialize_message,
)


# Configure basic logging (ensures it's set if not already done in main.py).
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')


# --- Connection Registry ---
class ConnectionRegistry:
    """
    Unordered set of live WebSocket connections.

    All mutation and iteration happen on the server's single event loop. Iteration
    always goes through a snapshot, so a connection added or removed while a
    broadcast is suspended on a write cannot disturb the fan-out in progress.
    """

    def __init__(self):
        self._connections = set()

    def add(self, websocket):
        self._connections.add(websocket)

    def remove(self, websocket):
        # discard() keeps a second removal (close after error) a no-op.
        self._connections.discard(websocket)

    def open_connections(self):
        """Returns a snapshot list of the registered connections that are currently open."""
        return [ws for ws in list(self._connections) if ws.state is State.OPEN]

    def clear(self):
        self._connections.clear()

    def __contains__(self, websocket):
        return websocket in self._connections

    def __len__(self):
        return len(self._connections)

    def __iter__(self):
        return iter(list(self._connections))


# CONNECTIONS: The registry shared by every connection handler in this process.
CONNECTIONS = ConnectionRegistry()


# --- Helper function to send JSON messages ---
async def send_json(websocket, message):
    """
    Serializes a message model and sends it over one WebSocket connection.
    Logs (instead of raising) when the connection is already closed or the send fails.

    Args:
        websocket (websockets.asyncio.server.ServerConnection): The client's connection object.
        message (pydantic.BaseModel): The message model to send.

    Returns:
        bool: True if the frame was handed to the transport, False otherwise.
    """
    return await _send_payload(websocket, serialize_message(message))


async def _send_payload(websocket, payload):
    try:
        if config.DEBUG:
            logging.info(f"Sending to {websocket.remote_address}: {payload}")
        await websocket.send(payload)
        return True
    except websockets.exceptions.ConnectionClosed:
        # Expected when the client disconnects between the state check and the write.
        logging.warning(f"Failed to send to {websocket.remote_address} because connection is closed.")
    except Exception:
        logging.exception(f"Unexpected error sending to {websocket.remote_address}")
    return False


# --- Broadcast Logic ---
async def broadcast(message, registry=None):
    """
    Sends one message to every open connection in the registry.

    The message is serialized once. Connections that are not open are skipped, and a
    failed write to one connection is logged without affecting the others. There is
    no retry.

    Args:
        message (pydantic.BaseModel): The outbound message model.
        registry (ConnectionRegistry, optional): Defaults to the process-wide CONNECTIONS.

    Returns:
        int: Number of connections the payload was delivered to.
    """
    registry = CONNECTIONS if registry is None else registry
    payload = serialize_message(message)
    recipients = registry.open_connections()

    if config.DEBUG:
        logging.info(f"Broadcasting to {len(recipients)} client(s): {payload}")

    results = await asyncio.gather(*(_send_payload(ws, payload) for ws in recipients))
    return sum(1 for delivered in results if delivered)


# --- Chat Handling ---
def format_server_time(now):
    return now.strftime(config.TIME_FORMAT)


def build_chat_reply(chat, now=None):
    """
    Builds the broadcast for one inbound chat message.

    - The literal text config.TIME_COMMAND becomes "<YYYY-MM-DD HH:MM:SS> from server".
    - A non-empty 'device' tag is appended as "<message> (from <device>)".
    - Anything else is echoed unchanged.

    Args:
        chat (ChatMessage): The parsed inbound message.
        now (datetime, optional): Clock reading to use for the time command. Defaults to datetime.now().

    Returns:
        ChatBroadcast: The message to send to every client.
    """
    if chat.message == config.TIME_COMMAND:
        now = datetime.now() if now is None else now
        return ChatBroadcast(message=f"{format_server_time(now)} from server")
    if chat.device:
        return ChatBroadcast(message=f"{chat.message} (from {chat.device})")
    return ChatBroadcast(message=chat.message)


async def route_message(websocket, raw, registry=None):
    """
    Handles one inbound frame from a connection.
    Malformed frames are logged and dropped; the connection stays open and nothing is
    sent back to the sender. Unrecognized types are ignored.

    Returns:
        int: Number of clients a resulting broadcast reached (0 if nothing was broadcast).
    """
    if config.DEBUG:
        logging.info(f"Raw message received from {websocket.remote_address}: {raw!r}")

    try:
        message = parse_message(raw)
    except MessageParseError as e:
        logging.warning(f"Error parsing message from {websocket.remote_address}: {e}")
        return 0

    if isinstance(message, ChatMessage):
        if config.DEBUG:
            logging.info(f"Received chat from {websocket.remote_address}: {message.model_dump(exclude_none=True)}")
        return await broadcast(build_chat_reply(message), registry)

    if config.DEBUG:
        logging.info(f"Ignoring message type {message.type!r} from {websocket.remote_address}")
    return 0


# --- Main Connection Handler ---
async def connection_handler(websocket):
    """
    Handles an individual client's WebSocket connection lifecycle.
    1. Registers the connection and sends it a private welcome message.
    2. Routes every inbound frame, in arrival order, until the connection closes.
    3. Deregisters the connection on clean close, transport error, or unexpected failure.

    Args:
        websocket (websockets.asyncio.server.ServerConnection): The connected client.
    """
    CONNECTIONS.add(websocket)
    logging.info(f"New client connected from {websocket.remote_address} ({len(CONNECTIONS)} connected)")
    try:
        await send_json(websocket, WelcomeMessage(message=config.WELCOME_MESSAGE))
        async for raw in websocket:
            await route_message(websocket, raw)
    except websockets.exceptions.ConnectionClosedOK:
        logging.info(f"Client {websocket.remote_address} disconnected gracefully.")
    except websockets.exceptions.ConnectionClosedError as e:
        logging.warning(f"Client {websocket.remote_address} disconnected with error: {e}")
    except Exception:
        logging.exception(f"An unexpected error occurred handling client {websocket.remote_address}")
    finally:
        CONNECTIONS.remove(websocket)
        logging.info(f"Client disconnected from {websocket.remote_address} ({len(CONNECTIONS)} connected)")


# --- Server Startup ---
def create_ssl_context():
    """
    Builds the server SSL context from config.CERT_FILE / config.KEY_FILE.

    Returns:
        ssl.SSLContext or None: None when SSL is disabled or the files cannot be loaded.
    """
    if not config.ENABLE_SSL:
        return None
    try:
        logging.info(f"Attempting to load SSL cert: {config.CERT_FILE}")
        logging.info(f"Attempting to load SSL key: {config.KEY_FILE}")
        ssl_context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        ssl_context.load_cert_chain(config.CERT_FILE, config.KEY_FILE)
        logging.info("SSL context created successfully. Server will use WSS.")
        return ssl_context
    except FileNotFoundError:
        logging.error(f"SSL Error: Certificate or Key file not found (Cert: '{config.CERT_FILE}', Key: '{config.KEY_FILE}'). Disabling SSL, falling back to WS.")
    except Exception:
        logging.exception("SSL Error: Failed to create SSL context. Disabling SSL, falling back to WS.")
    return None


def serve(host, port, ssl_context=None):
    """Returns the (not yet entered) websockets server for connection_handler on host:port."""
    return websockets.serve(
        connection_handler,
        host,
        port,
        ssl=ssl_context,
        max_size=config.MAX_MESSAGE_SIZE,
    )


async def start_server(host, port):
    """
    Starts the WebSocket server on host:port and runs it until the process is stopped.

    Args:
        host (str): The hostname or IP address to bind the server to (from config).
        port (int): The port number to bind the server to (from config).
    """
    ssl_context = create_ssl_context()
    effective_protocol = "wss" if ssl_context else "ws"
    logging.info(f"Starting server on {effective_protocol}://{host}:{port}")
    logging.info(f"Maximum WebSocket message size set to: {config.MAX_MESSAGE_SIZE} bytes")
    logging.info(f"Server Debug Logging: {'ENABLED' if config.DEBUG else 'DISABLED'}")

    try:
        async with serve(host, port, ssl_context):
            await asyncio.Future() # This runs forever.
    except OSError:
        logging.exception(f"OSError starting server on {host}:{port} - Is the port already in use?")
    except Exception:
        logging.exception(f"Unexpected error occurred during server startup or runtime ({effective_protocol})")
        raise # Re-raise so main.py can report it.
