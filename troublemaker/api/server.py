"""
HTTP listener thread.

Sleeps the resolved web delay, binds the listen address and serves the app
with uvicorn on a daemon thread. A bind failure is fatal to the process.
"""

import socket
import threading
import time
from typing import Callable, Optional, Tuple

import structlog
import uvicorn
from fastapi import FastAPI

from troublemaker.durations import format_duration, to_seconds
from troublemaker.engine.lifecycle import Terminate, terminate_process
from troublemaker.exceptions import ListenError


def parse_listen_address(address: str) -> Tuple[str, int]:
    """
    Split "host:port" into its parts.

    An empty host (":8092") means all interfaces; IPv6 hosts are written in
    brackets ("[::1]:8092").

    Raises:
        ListenError: no port, or a port outside 0..65535.
    """
    host, sep, port_text = address.rpartition(":")
    if not sep or not port_text.isdigit():
        raise ListenError(address)
    port = int(port_text)
    if port > 65535:
        raise ListenError(address)
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host or "0.0.0.0", port


def bind_listener(address: str) -> socket.socket:
    """Bind and listen on ``address``; ListenError on failure."""
    host, port = parse_listen_address(address)
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    try:
        return socket.create_server((host, port), family=family)
    except OSError as exc:
        raise ListenError(address, cause=exc) from exc


class HTTPServerThread(threading.Thread):
    """Daemon thread: delay, bind, serve until the process ends."""

    def __init__(
        self,
        app: FastAPI,
        listen: str,
        delay: int,
        logger: structlog.stdlib.BoundLogger,
        terminate: Terminate = terminate_process,
        sleep: Callable[[float], None] = time.sleep,
        log_level: str = "info",
    ):
        super().__init__(name="http-server", daemon=True)
        self.app = app
        self.listen = listen
        self.delay = delay
        self.logger = logger
        self.log_level = log_level
        self._terminate = terminate
        self._sleep = sleep
        self.server: Optional[uvicorn.Server] = None

    def run(self) -> None:
        if self.delay > 0:
            self.logger.info("web_delay", delay=format_duration(self.delay))
            self._sleep(to_seconds(self.delay))

        try:
            sock = bind_listener(self.listen)
        except ListenError as exc:
            self.logger.critical("http_listen_error", **exc.to_dict())
            self._terminate(1)
            return

        self.logger.info("listen", address=self.listen)
        config = uvicorn.Config(
            self.app,
            log_config=None,
            log_level=self.log_level,
            access_log=False,
            lifespan="off",
        )
        self.server = uvicorn.Server(config)
        self.server.run(sockets=[sock])


def start_http_server(
    app: FastAPI,
    listen: str,
    delay: int,
    logger: structlog.stdlib.BoundLogger,
    terminate: Terminate = terminate_process,
    log_level: str = "info",
) -> HTTPServerThread:
    """Start the listener thread, fire and forget."""
    thread = HTTPServerThread(
        app=app,
        listen=listen,
        delay=delay,
        logger=logger,
        terminate=terminate,
        log_level=log_level,
    )
    thread.start()
    return thread
