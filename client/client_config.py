# client/client_config.py
# Settings for the terminal chat client. relay_manager.py rewrites WEBSOCKET_PORT and DEBUG in place.

# WEBSOCKET_HOST: Host name or IP address of the relay server.
WEBSOCKET_HOST = 'localhost'

# WEBSOCKET_PORT: Must match PORT in server/config.py.
WEBSOCKET_PORT = 8080

# USE_SSL: Connect with wss:// (the server must have ENABLE_SSL set and valid certificates).
USE_SSL = False

# DEVICE_NAME: Tag sent with every chat message; the server appends it as "(from <DEVICE_NAME>)".
DEVICE_NAME = 'terminal'

# DEBUG: Log every raw frame sent and received.
DEBUG = False
