#!/usr/bin/env python3
# relay_manager.py - Main control script for the chat relay
#
# This script provides a command-line interface to manage the relay server:
# - Checks for required Python packages listed in server/requirements.txt and offers installation.
# - Allows viewing and modifying configuration settings:
#   - Server Host/Port (Port is saved to server/config.py AND client/client_config.py)
#   - Server Debug Mode and SSL switch (saved to server/config.py)
#   - Client Debug Mode (saved to client/client_config.py)
# - Saves both configuration files before starting.
# - Starts the relay server (server/main.py) as a subprocess and displays its log output.
# - Handles graceful shutdown on Ctrl+C.

import subprocess         # For running external processes (relay server, pip).
import sys                # For accessing Python interpreter path and exiting.
import os                 # For path manipulation.
import re                 # For regular expressions used in config file parsing.
import importlib.util     # For checking if a library is installed without importing it.
import threading          # For streaming the server's output concurrently.
import time               # For pausing execution in the monitoring loop.

# --- Constants ---
SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
CONFIG_FILE_PATH = os.path.join(SCRIPT_DIR, 'server', 'config.py')
CLIENT_CONFIG_FILE_PATH = os.path.join(SCRIPT_DIR, 'client', 'client_config.py')
REQUIREMENTS_FILE_PATH = os.path.join(SCRIPT_DIR, 'server', 'requirements.txt')
SERVER_SCRIPT_PATH = os.path.join(SCRIPT_DIR, 'server', 'main.py')

DEFAULT_SETTINGS = {
    'host': '0.0.0.0',
    'port': 8080,
    'server_debug': False,
    'enable_ssl': False,
    'client_debug': False,
}

# --- Global Variables for Server Management ---
relay_process = None    # Holds the subprocess.Popen object for the relay server.
relay_log_thread = None # Holds the threading.Thread object that streams the server's output.
stop_event = threading.Event() # Signals the log thread and monitoring loop to stop.


# --- Dependency Management ---
def parse_package_name(requirement_line):
    """
    Parses a requirement line (e.g., 'websockets>=14.0') to extract the base package name ('websockets').

    Args:
        requirement_line (str): A line from requirements.txt.

    Returns:
        str or None: The extracted package name, or None for blank lines and comments.
    """
    line = requirement_line.strip()
    if not line or line.startswith('#'):
        return None
    match = re.match(r"^[a-zA-Z0-9._-]+", line)
    if match:
        return match.group(0)
    return None


def find_missing_packages(requirements):
    """Returns the package names from the given requirement lines that cannot be imported."""
    missing = []
    for line in requirements:
        package_name = parse_package_name(line)
        # find_spec is a lightweight check that does not import the package.
        if package_name and importlib.util.find_spec(package_name) is None:
            missing.append(package_name)
    return missing


def check_dependencies():
    """
    Checks that the packages in server/requirements.txt are installed.
    If any are missing, prompts to install them with pip. Exits if installation is declined or fails.
    """
    print(f"Checking dependencies listed in {REQUIREMENTS_FILE_PATH}...")
    try:
        with open(REQUIREMENTS_FILE_PATH, 'r', encoding='utf-8') as f:
            missing_packages = find_missing_packages(f.readlines())
    except FileNotFoundError:
        print(f"Error: {REQUIREMENTS_FILE_PATH} not found. Cannot check dependencies.")
        sys.exit(1)

    if not missing_packages:
        print("All required packages found.")
        return

    for package_name in missing_packages:
        print(f"  - Package '{package_name}' not found.")
    package_list = ", ".join(missing_packages)
    confirm = input(f"Attempt to install missing packages ({package_list}) using pip? (y/n): ").lower().strip()
    if confirm != 'y':
        print("Installation declined. Please install required packages manually and restart.")
        sys.exit(1)

    print(f"Installing packages from {REQUIREMENTS_FILE_PATH}...")
    try:
        subprocess.run(
            [sys.executable, "-m", "pip", "install", "-r", REQUIREMENTS_FILE_PATH],
            check=True,
            capture_output=True,
            text=True,
        )
        print("Packages installed successfully.")
    except subprocess.CalledProcessError as e:
        print(f"Error installing packages: {e}")
        print("--- PIP Error Output ---")
        print(e.stderr)
        print("----------------------")
        print(f"Please install packages manually (e.g., 'pip install -r {REQUIREMENTS_FILE_PATH}') and restart.")
        sys.exit(1)


# --- Configuration Management ---
def _read_text(path):
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return f.read()
    except FileNotFoundError:
        print(f"Warning: {path} not found. Using default settings.")
    except OSError as e:
        print(f"Warning: Error reading {path}: {e}. Using default settings.")
    return None


def read_config():
    """
    Reads server settings (HOST, PORT, DEBUG, ENABLE_SSL) from server/config.py and
    the client DEBUG flag from client/client_config.py using regex.
    Missing files or settings keep their defaults (with a warning).

    Returns:
        dict: {'host', 'port', 'server_debug', 'enable_ssl', 'client_debug'}.
    """
    settings = dict(DEFAULT_SETTINGS)

    content = _read_text(CONFIG_FILE_PATH)
    if content is not None:
        host_match = re.search(r"^HOST\s*=\s*['\"]([^'\"]+)['\"]", content, re.MULTILINE)
        if host_match: settings['host'] = host_match.group(1)
        else: print(f"Warning: Could not find HOST setting in {CONFIG_FILE_PATH}, using default '{settings['host']}'.")

        port_match = re.search(r"^PORT\s*=\s*(\d+)", content, re.MULTILINE)
        if port_match: settings['port'] = int(port_match.group(1))
        else: print(f"Warning: Could not find PORT setting in {CONFIG_FILE_PATH}, using default {settings['port']}.")

        debug_match = re.search(r"^DEBUG\s*=\s*(True|False)", content, re.MULTILINE)
        if debug_match: settings['server_debug'] = debug_match.group(1) == 'True'
        else: print(f"Warning: Could not find DEBUG setting in {CONFIG_FILE_PATH}, using default {settings['server_debug']}.")

        ssl_match = re.search(r"^ENABLE_SSL\s*=\s*(True|False)", content, re.MULTILINE)
        if ssl_match: settings['enable_ssl'] = ssl_match.group(1) == 'True'

    content = _read_text(CLIENT_CONFIG_FILE_PATH)
    if content is not None:
        client_debug_match = re.search(r"^DEBUG\s*=\s*(True|False)", content, re.MULTILINE)
        if client_debug_match: settings['client_debug'] = client_debug_match.group(1) == 'True'
        else: print(f"Warning: Could not find DEBUG setting in {CLIENT_CONFIG_FILE_PATH}, using default {settings['client_debug']}.")

    return settings


def _format_value(value):
    # repr() gives valid Python literals for strings and booleans.
    return repr(value) if isinstance(value, (str, bool)) else value


def _update_settings_file(path, settings, setting_patterns):
    """
    Rewrites the lines of a Python config file that assign the given settings,
    preserving every other line, and appends any setting that was not found.

    Args:
        path (str): The config file to update (created if missing).
        settings (dict): Current values keyed as in setting_patterns.
        setting_patterns (dict): {compiled regex: (settings key, line format string)}.

    Returns:
        bool: True if writing was successful, False otherwise.
    """
    try:
        lines = []
        try:
            with open(path, 'r', encoding='utf-8') as f: lines = f.readlines()
        except FileNotFoundError: pass

        new_lines = []
        updated_flags = {key: False for key, _ in setting_patterns.values()}
        for line in lines:
            line_updated = False
            for pattern, (key, format_str) in setting_patterns.items():
                if pattern.match(line) and not updated_flags[key]:
                    new_lines.append(format_str.format(value=_format_value(settings[key])))
                    updated_flags[key], line_updated = True, True
                    break
            if not line_updated: new_lines.append(line)

        appended_header = False
        for pattern, (key, format_str) in setting_patterns.items():
            if not updated_flags[key]:
                if not appended_header:
                    if new_lines and not new_lines[-1].endswith('\n'): new_lines.append('\n')
                    new_lines.append("\n# --- Settings added/updated by relay_manager ---\n")
                    appended_header = True
                new_lines.append(format_str.format(value=_format_value(settings[key])))

        with open(path, 'w', encoding='utf-8') as f: f.writelines(new_lines)
        return True
    except OSError as e:
        print(f"Error writing configuration to {path}: {e}")
        return False


def write_config(settings):
    """Writes HOST, PORT, DEBUG and ENABLE_SSL back to server/config.py."""
    return _update_settings_file(CONFIG_FILE_PATH, settings, {
        re.compile(r"^HOST\s*="): ('host', "HOST = {value}\n"),
        re.compile(r"^PORT\s*="): ('port', "PORT = {value}\n"),
        re.compile(r"^DEBUG\s*="): ('server_debug', "DEBUG = {value}\n"),
        re.compile(r"^ENABLE_SSL\s*="): ('enable_ssl', "ENABLE_SSL = {value}\n"),
    })


def write_client_config(settings):
    """Writes WEBSOCKET_PORT, USE_SSL and DEBUG back to client/client_config.py."""
    return _update_settings_file(CLIENT_CONFIG_FILE_PATH, settings, {
        re.compile(r"^WEBSOCKET_PORT\s*="): ('port', "WEBSOCKET_PORT = {value}\n"),
        re.compile(r"^USE_SSL\s*="): ('enable_ssl', "USE_SSL = {value}\n"),
        re.compile(r"^DEBUG\s*="): ('client_debug', "DEBUG = {value}\n"),
    })


def parse_port(value):
    """Returns value as a port number, or None if it is not an integer in 1-65535."""
    try:
        port_int = int(value)
    except ValueError:
        return None
    return port_int if 0 < port_int < 65536 else None


def config_menu(settings):
    """
    Displays the configuration menu and edits 'settings' in place.

    Returns:
        bool: True if the server should start, False if exiting.
    """
    while True:
        print("\n--- Chat Relay Configuration & Management ---")
        print(f"1. Server Host:      {settings['host']}")
        print(f"2. Server Port:      {settings['port']}")
        print(f"3. Server Debug Log: {'ENABLED' if settings['server_debug'] else 'DISABLED'}")
        print(f"4. Client Debug Log: {'ENABLED' if settings['client_debug'] else 'DISABLED'}")
        print(f"5. SSL (wss://):     {'ENABLED' if settings['enable_ssl'] else 'DISABLED'}")
        print("---------------------------------------------")
        print("6. Start Relay Server")
        print("7. Exit")
        print("---------------------------------------------")
        choice = input("Enter choice: ").strip()

        if choice == '1':
            new_val = input(f"Enter new Server Host [{settings['host']}]: ").strip()
            if new_val: settings['host'] = new_val
        elif choice == '2':
            new_val = input(f"Enter new Server Port [{settings['port']}]: ").strip()
            if new_val:
                port_int = parse_port(new_val)
                if port_int is None: print("Invalid port number (1-65535).")
                else:
                    settings['port'] = port_int
                    print("Note: Port change will update server/config.py and client/client_config.py.")
        elif choice == '3':
            settings['server_debug'] = not settings['server_debug']
            print(f"Server Debug Mode {'ENABLED' if settings['server_debug'] else 'DISABLED'}.")
        elif choice == '4':
            settings['client_debug'] = not settings['client_debug']
            print(f"Client Debug Mode {'ENABLED' if settings['client_debug'] else 'DISABLED'}.")
        elif choice == '5':
            settings['enable_ssl'] = not settings['enable_ssl']
            print(f"SSL {'ENABLED' if settings['enable_ssl'] else 'DISABLED'}. Place cert.pem and key.pem in certs/.")
        elif choice == '6':
            print("Saving configuration...")
            if write_config(settings) and write_client_config(settings):
                return True
            input("Failed to save one or more configurations. Press Enter to return...")
        elif choice == '7':
            return False
        else: print("Invalid choice.")


# --- Relay Server Process ---
def log_relay_output(process):
    """Target function for the log thread: echoes the server's output line by line."""
    try:
        for line in iter(process.stdout.readline, ''):
            if stop_event.is_set(): break
            print(f"[RELAY] {line.strip()}", flush=True)
        if not stop_event.is_set() and process.poll() is not None:
            print("[RELAY Log Thread] Server process stdout EOF or process terminated.", flush=True)
    except (OSError, ValueError) as e:
        # ValueError: stdout closed underneath us during shutdown.
        if not stop_event.is_set(): print(f"[RELAY Log Thread] Error reading server output: {e}", flush=True)


def _start_relay_process():
    """Starts server/main.py with the current interpreter and a thread streaming its output."""
    global relay_process, relay_log_thread
    print("Starting relay server subprocess...")
    try:
        relay_process = subprocess.Popen(
            [sys.executable, SERVER_SCRIPT_PATH],
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            encoding='utf-8',
            bufsize=1, # Line-buffered output.
            cwd=SCRIPT_DIR,
        )
    except OSError as e:
        print(f"Error starting relay server process: {e}")
        relay_process = None
        return None
    print(f"Relay server process started (PID: {relay_process.pid}). Output will follow:")
    relay_log_thread = threading.Thread(target=log_relay_output, args=(relay_process,), daemon=True)
    relay_log_thread.start()
    return relay_process


def start_relay():
    """Starts the relay server process and watches it until it exits or Ctrl+C is pressed."""
    stop_event.clear()
    if _start_relay_process() is None:
        print("Exiting due to server startup failure.")
        sys.exit(1)

    print("\nRelay server is running. Press Ctrl+C to stop.")
    try:
        while not stop_event.is_set():
            if relay_process.poll() is not None:
                print(f"\nError: Relay server process terminated unexpectedly (Exit Code: {relay_process.returncode}).")
                stop_event.set(); break
            time.sleep(0.5)
    except KeyboardInterrupt:
        print("\nShutdown signal (Ctrl+C) received..."); stop_event.set()
    finally:
        _shutdown_relay()


def _shutdown_relay():
    """Terminates the server process (killing it on timeout) and joins the log thread."""
    global relay_process, relay_log_thread
    print("Initiating server shutdown...")

    if relay_process and relay_process.poll() is None:
        print("Terminating relay server process...")
        try:
            relay_process.terminate(); relay_process.wait(timeout=5)
            print("Relay server process terminated.")
        except subprocess.TimeoutExpired:
            print("Relay process did not terminate gracefully, killing."); relay_process.kill()
            relay_process.wait(timeout=2)
    relay_process = None

    if relay_log_thread and relay_log_thread.is_alive():
        print("Waiting for log thread..."); relay_log_thread.join(timeout=2)
        if relay_log_thread.is_alive(): print("Warning: Log thread did not exit.")
    relay_log_thread = None

    print("Shutdown complete.")


# --- Main Execution ---
def main():
    """Check deps, read config, run menu, start/manage the relay server."""
    print("--- Starting Chat Relay Manager ---")
    check_dependencies()
    current_settings = read_config()
    if config_menu(current_settings):
        start_relay()
    else:
        print("Exiting Chat Relay Manager.")


if __name__ == "__main__":
    main()
