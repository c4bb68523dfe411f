"""
uvicorn listeners for Apps.

TestServer runs an ASGI app on an OS-assigned local port in a
background thread, for the lifetime of an in-process test.
serve_forever runs the production listener in the foreground.
"""

from __future__ import annotations

import logging
import socket
import threading
import time
from typing import Any

import uvicorn

logger = logging.getLogger(__name__)

STARTUP_TIMEOUT = 10.0


class TestServer:
    """
    Ephemeral uvicorn server bound to 127.0.0.1 on a free port.

    Example:
        with app.new_test_server() as server:
            httpx.get(f"{server.url}/ping")
    """

    __test__ = False

    def __init__(self, asgi_app: Any, host: str = "127.0.0.1"):
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._sock.bind((host, 0))
        self.host = host
        self.port: int = self._sock.getsockname()[1]

        config = uvicorn.Config(asgi_app, lifespan="off", log_level="warning")
        self._server = uvicorn.Server(config)
        self._thread = threading.Thread(
            target=self._server.run,
            kwargs={"sockets": [self._sock]},
            name=f"test-server-{self.port}",
            daemon=True,
        )

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def start(self) -> None:
        """Start serving and wait until the listener accepts connections."""
        self._thread.start()
        deadline = time.monotonic() + STARTUP_TIMEOUT
        while not self._server.started:
            if not self._thread.is_alive():
                raise RuntimeError(f"test server on port {self.port} exited during startup")
            if time.monotonic() > deadline:
                self.close()
                raise RuntimeError(f"test server on port {self.port} did not start")
            time.sleep(0.01)
        logger.debug(f"[sdk] Test server listening at {self.url}")

    def close(self) -> None:
        self._server.should_exit = True
        if self._thread.is_alive():
            self._thread.join(timeout=STARTUP_TIMEOUT)
        self._sock.close()

    def __enter__(self) -> TestServer:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def serve_forever(asgi_app: Any, port: str, host: str = "0.0.0.0") -> None:
    """
    Run the production listener until the process exits.

    The App cannot operate without its listener, so an invalid port or
    a bind failure terminates the process.
    """
    try:
        port_number = int(port)
        uvicorn.run(asgi_app, host=host, port=port_number)
    except (ValueError, OSError) as e:
        logger.critical(f"[sdk] Failed to listen on port {port}: {e}")
        raise SystemExit(1) from e
