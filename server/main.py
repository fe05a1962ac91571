# server/main.py
# This script serves as the main entry point for starting the chat relay WebSocket server.
# It sets up basic logging, reads configuration settings from the 'config' module,
# and runs the asynchronous server startup defined in the 'server' module.

import asyncio  # Runs the server's event loop.
import config   # Server configuration variables (HOST, PORT, SSL settings, etc.) defined in server/config.py.
import server   # Server logic, including start_server and the connection handler, from server/server.py.
import logging  # Standard Python logging for server events and errors.

# Configure basic logging settings for the server application.
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')


def main():
    logging.info("Attempting to start server from main.py...")
    try:
        logging.info(f"Using HOST={config.HOST}, PORT={config.PORT}")
        asyncio.run(server.start_server(config.HOST, config.PORT))
    except KeyboardInterrupt:
        # Ctrl+C in the terminal where the server is running.
        logging.info("Server stopped manually via KeyboardInterrupt.")
    except Exception:
        # Anything start_server re-raised (critical errors during startup or runtime).
        logging.exception("Server failed to start or crashed in main.py")


if __name__ == "__main__":
    main()
