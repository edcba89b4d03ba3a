#!/usr/bin/env python3
"""Photorific launcher.

Runs the API server under gunicorn with a single threaded worker.
"""

import os
import signal
import socket
import subprocess
import sys
import time
import urllib.request

PROJECT_DIR = os.path.dirname(os.path.abspath(__file__))
HOST = os.environ.get("PHOTORIFIC_HOST", "127.0.0.1")
PORT = int(os.environ.get("PORT", "9000"))
THREADS = 16
HEALTH_URL = f"http://127.0.0.1:{PORT}/api/settings/version"
PID_FILE = os.path.join(PROJECT_DIR, ".gunicorn.pid")

gunicorn_proc: subprocess.Popen[bytes] | None = None


def log(msg: str) -> None:
    print(f"[photorific] {msg}", flush=True)


def port_in_use(port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        return s.connect_ex(("127.0.0.1", port)) == 0


def wait_for_server(timeout: int = 15) -> bool:
    """Poll the health URL until the server responds or timeout."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        try:
            with urllib.request.urlopen(HEALTH_URL, timeout=1):
                return True
        except OSError:
            pass
        if gunicorn_proc and gunicorn_proc.poll() is not None:
            return False
        time.sleep(0.5)
    return False


def shutdown(_signum: int = 0, _frame: object = None) -> None:
    """Gracefully stop gunicorn."""
    log("Shutting down...")
    if gunicorn_proc and gunicorn_proc.poll() is None:
        gunicorn_proc.terminate()
        try:
            gunicorn_proc.wait(timeout=10)
        except subprocess.TimeoutExpired:
            gunicorn_proc.kill()
    if os.path.exists(PID_FILE):
        os.remove(PID_FILE)
    log("Stopped.")
    sys.exit(0)


def main() -> None:
    global gunicorn_proc

    if port_in_use(PORT):
        log(f"Port {PORT} is already in use. Is Photorific already running?")
        sys.exit(1)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    log(f"Starting Photorific on {HOST}:{PORT}...")

    # Jobs and event subscribers live in worker memory, so there must be one worker
    gunicorn_proc = subprocess.Popen(
        [
            sys.executable,
            "-m",
            "gunicorn",
            "--bind",
            f"{HOST}:{PORT}",
            "--workers",
            "1",
            "--worker-class",
            "gthread",
            "--threads",
            str(THREADS),
            "--timeout",
            "0",
            "--pid",
            PID_FILE,
            "--access-logfile",
            "-",
            "--error-logfile",
            "-",
            "photorific:create_app()",
        ],
        cwd=PROJECT_DIR,
    )

    if not wait_for_server():
        log("Server did not start. Check output above.")
        shutdown()

    log(f"Photorific API is running at http://{HOST}:{PORT}/api")
    log("Press Ctrl+C to stop the server.")

    try:
        gunicorn_proc.wait()
    except KeyboardInterrupt:
        shutdown()


if __name__ == "__main__":
    main()
