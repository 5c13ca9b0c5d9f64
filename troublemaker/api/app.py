"""
Troublemaker HTTP surface.

GET  /          liveness: plaintext CPU count and available parallelism
GET  /exit/     respond 200, then exit with ?code=N (0..127, default 1)
GET  /exit      301 to /exit/

Any other path is answered like "/", so probes pointed anywhere still
see a live process.
"""

import os
import re
import time
import uuid
from typing import Optional

import structlog
from fastapi import BackgroundTasks, FastAPI, Request, Response
from fastapi.responses import PlainTextResponse, RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware

from troublemaker import __version__
from troublemaker.engine.lifecycle import Terminate, terminate_process
from troublemaker.engine.load import available_parallelism

DEFAULT_HTTP_EXIT_CODE = 1
MAX_HTTP_EXIT_CODE = 127

_INTEGER = re.compile(r"[+-]?[0-9]+")


def parse_exit_code(raw: Optional[str]) -> int:
    """
    Exit code from the ?code= query parameter.

    Anything that is not a base-10 integer in [0, 127] falls back to
    DEFAULT_HTTP_EXIT_CODE; a bad code never fails the request.
    """
    if raw is None or not _INTEGER.fullmatch(raw):
        return DEFAULT_HTTP_EXIT_CODE
    code = int(raw)
    if code < 0 or code > MAX_HTTP_EXIT_CODE:
        return DEFAULT_HTTP_EXIT_CODE
    return code


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Adds request_id and timing to every request.

    The request_id is read from X-Request-ID when an upstream proxy set
    one, generated otherwise, returned in the response header and bound
    into ``request.state.logger`` for the handlers.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        request.state.request_id = request_id
        request.state.logger = request.app.state.logger.bind(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - start) * 1000, 2)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{elapsed_ms}ms"

        request.state.logger.debug(
            "request_completed",
            status=response.status_code,
            elapsed_ms=elapsed_ms,
        )
        return response


def create_app(
    logger: Optional[structlog.stdlib.BoundLogger] = None,
    terminate: Terminate = terminate_process,
) -> FastAPI:
    """Create the FastAPI application. ``terminate`` ends the process for /exit/."""
    app = FastAPI(
        title="troublemaker",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.logger = logger or structlog.get_logger(__name__)
    app.state.terminate = terminate

    app.add_middleware(RequestContextMiddleware)

    # ── Remote exit ──────────────────────────────────────────────────
    @app.get("/exit/", response_class=PlainTextResponse)
    @app.get("/exit/{rest:path}", response_class=PlainTextResponse, include_in_schema=False)
    async def exit_process(
        request: Request,
        background_tasks: BackgroundTasks,
        code: Optional[str] = None,
    ):
        """Answer 200, then exit once the response is on the wire."""
        exit_code = parse_exit_code(code)
        request.state.logger.info("exit_on_http_request", exit_code=exit_code, raw_code=code)
        background_tasks.add_task(request.app.state.terminate, exit_code)
        return PlainTextResponse("", status_code=200)

    @app.get("/exit", include_in_schema=False)
    async def exit_redirect(request: Request):
        """Bare /exit moves permanently to /exit/, query string kept."""
        target = "/exit/"
        if request.url.query:
            target += f"?{request.url.query}"
        return RedirectResponse(target, status_code=301)

    # ── Liveness ─────────────────────────────────────────────────────
    @app.get("/", response_class=PlainTextResponse)
    @app.get("/{rest:path}", response_class=PlainTextResponse, include_in_schema=False)
    async def root(request: Request):
        """CPU count and the CPUs this process may use."""
        request.state.logger.info("root_requested")
        return (
            f"numcpu: {os.cpu_count()}\n"
            f"maxprocs: {available_parallelism()}\n"
        )

    return app
