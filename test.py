"""
AURA TEST SCRIPT - Console client for a running backend
=======================================================

PURPOSE:
Command-line interface for trying the AURA API without the browser frontend.
Chat in normal mode (Google Search grounding on) or command mode (grounding
off), check health, and synthesize speech to a file.

USAGE:
    python test.py

    Make sure the server is running first: python run.py

COMMANDS:
    1 - Switch to Chat mode (answers may cite web sources)
    2 - Switch to Command mode (isCommand=true, no web search)
    /health      - Show server status and whether the API key is loaded
    /tts <text>  - Synthesize speech and save the raw audio to aura_tts.pcm
    /quit or /exit - Exit the test interface
"""

import base64
import os

import requests


# -----------------------------------------------------------------------------
# CONFIGURATION
# -----------------------------------------------------------------------------
# API base URL; override with AURA_URL if the server runs elsewhere.
BASE_URL = os.getenv("AURA_URL", f"http://localhost:{os.getenv('PORT', '3000')}")
TTS_OUTPUT = "aura_tts.pcm"
CURRENT_MODE = "chat"  # "chat" or "command"


# -----------------------------------------------------------------------------
# UI HELPERS
# -----------------------------------------------------------------------------

def print_header():
    print("\n" + "="*60)
    print("AURA - Console Client")
    print("="*60)
    print("\nModes:")
    print("  1 = Chat (with Google Search grounding)")
    print("  2 = Command (no web search)")
    print("\nCommands:")
    print("  /health - Server status")
    print("  /tts <text> - Speak text, save audio")
    print("  /quit - Exit")
    print("="*60 + "\n")


def get_user_input():
    """Read one line; None on Ctrl+C / Ctrl+D."""
    try:
        return input("\nYou: ").strip()
    except (KeyboardInterrupt, EOFError):
        return None


def _error_text(response):
    """Pull the `error` field out of a {success: false} body if there is one."""
    try:
        return f"Error {response.status_code}: {response.json()['error']}"
    except (ValueError, KeyError, TypeError):
        return f"Error {response.status_code}: {response.text}"


# -----------------------------------------------------------------------------
# API CALLS
# -----------------------------------------------------------------------------

def send_message(message, mode):
    """
    POST /api/chat and format the reply as "[EMOTION] text" plus any sources.

    Upstream retries can take several seconds, so the timeout is generous.
    """
    try:
        response = requests.post(
            f"{BASE_URL}/api/chat",
            json={"message": message, "isCommand": mode == "command"},
            timeout=90,
        )
        if response.status_code != 200:
            return _error_text(response)

        data = response.json()
        output = f"[{data.get('emotion', 'NEUTRAL')}] {data.get('text', '')}"
        for i, source in enumerate(data.get("sources", []), 1):
            output += f"\n  {i}. {source['title']} - {source['uri']}"
        return output

    except requests.exceptions.ConnectionError:
        return "Cannot connect to backend. Start it with: python run.py"
    except requests.exceptions.Timeout:
        return "Request timed out."


def speak(text):
    """POST /api/tts and write the decoded audio to TTS_OUTPUT."""
    try:
        response = requests.post(f"{BASE_URL}/api/tts", json={"text": text}, timeout=90)
        if response.status_code != 200:
            return _error_text(response)

        data = response.json()
        with open(TTS_OUTPUT, "wb") as f:
            f.write(base64.b64decode(data["audioData"]))
        return f"Saved {data['mimeType']} audio to {TTS_OUTPUT}"

    except requests.exceptions.ConnectionError:
        return "Cannot connect to backend. Start it with: python run.py"
    except requests.exceptions.Timeout:
        return "Request timed out."


def get_health():
    try:
        data = requests.get(f"{BASE_URL}/api/health", timeout=10).json()
        key_status = "loaded" if data.get("hasApiKey") else "MISSING"
        return f"Status: {data.get('status')} at {data.get('timestamp')} (API key {key_status})"
    except requests.exceptions.RequestException as e:
        return f"Health check failed: {e}"


# -----------------------------------------------------------------------------
# MAIN LOOP
# -----------------------------------------------------------------------------

def main():
    global CURRENT_MODE
    print_header()

    while True:
        user_input = get_user_input()
        if user_input is None or user_input in ("/quit", "/exit"):
            print("\nGoodbye!")
            break
        if not user_input:
            continue

        if user_input == "1":
            CURRENT_MODE = "chat"
            print("Switched to CHAT mode\n")
        elif user_input == "2":
            CURRENT_MODE = "command"
            print("Switched to COMMAND mode\n")
        elif user_input == "/health":
            print(get_health())
        elif user_input.startswith("/tts"):
            text = user_input[len("/tts"):].strip()
            print(speak(text) if text else "Usage: /tts <text>")
        elif user_input.startswith("/"):
            print(f"Unknown command: {user_input}")
        else:
            print("AURA: ", end="", flush=True)
            print(send_message(user_input, CURRENT_MODE))


# Run the interactive loop when this file is executed (python test.py).
if __name__ == "__main__":
    main()
