# server/config.py
# This file centralizes configuration settings for the chat relay WebSocket server.
# Values here are read at import time by server.py and main.py, and rewritten in place by relay_manager.py.

import os # Import the 'os' module to help construct file paths reliably across different operating systems.

# --- Network Configuration ---

# HOST: The IP address the WebSocket server should listen on.
# - '0.0.0.0': Listen on all available network interfaces (reachable from other devices on the network).
# - '127.0.0.1' or 'localhost': Listen only on the local machine.
HOST = '0.0.0.0'

# PORT: The TCP port number the WebSocket server should listen on.
# Must match WEBSOCKET_PORT in client/client_config.py (relay_manager.py keeps the two in sync).
PORT = 8080

# MAX_MESSAGE_SIZE: Largest inbound frame (in bytes) the server accepts before the transport closes the connection.
MAX_MESSAGE_SIZE = 100 * 1024 * 1024

# --- Protocol Configuration ---

# WELCOME_MESSAGE: Text sent privately to every client right after it connects.
WELCOME_MESSAGE = "Connected to WebSocket Server!"

# TIME_COMMAND: Inbound chat text that is replaced with the server's clock instead of being echoed.
TIME_COMMAND = "time"

# TIME_FORMAT: strftime pattern for the server clock reply (24-hour, YYYY-MM-DD HH:MM:SS).
TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

# --- SSL Configuration ---

# CERT_DIR: The directory where SSL certificate files (cert.pem, key.pem) are expected to be located.
# Calculated relative to this config file's location (server/ -> ../certs/).
CERT_DIR = os.path.join(os.path.dirname(__file__), '..', 'certs')
CERT_FILE = os.path.join(CERT_DIR, 'cert.pem')
KEY_FILE = os.path.join(CERT_DIR, 'key.pem')

# ENABLE_SSL: Serve wss:// instead of ws://. Falls back to ws:// if the files above cannot be loaded.
ENABLE_SSL = False

# --- Debugging ---

# DEBUG: Log every raw inbound frame and outbound payload.
DEBUG = False
