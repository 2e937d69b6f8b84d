"""
ASGI middleware: request context, access log, error boundary.

RequestContextMiddleware binds the correlation ID (read from
x-correlation-id or generated), echoes it on the response and writes one
access-log line per request with status and duration. Download paths are
logged with the grant id shortened.

ErrorBoundaryMiddleware turns anything a route failed to handle into a
generic 500 JSON body. The full exception goes to the log only.
"""

import json
import time

from toolhub.core.logging_config import (
    CORRELATION_HEADER,
    generate_correlation_id,
    get_correlation_id,
    get_logger,
    set_correlation_id,
    set_operation,
    short_id,
)

logger = get_logger("middleware")


def loggable_path(path: str) -> str:
    """Request path safe for logs: /download/<grant>/<name> keeps a short grant id."""
    if path.startswith("/download/"):
        parts = path.split("/", 3)
        if len(parts) == 4:
            return f"/download/{short_id(parts[2])}/{parts[3]}"
    return path


class RequestContextMiddleware:
    """Correlation ID propagation plus access logging for HTTP requests."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        cid_header = CORRELATION_HEADER.encode("utf-8")
        cid = dict(scope.get("headers", [])).get(cid_header, b"").decode("latin-1").strip()
        cid = cid or generate_correlation_id()
        set_correlation_id(cid)
        set_operation("")

        status = 500
        started = time.perf_counter()

        async def send_with_correlation(message):
            nonlocal status
            if message["type"] == "http.response.start":
                status = message["status"]
                headers = list(message.get("headers", []))
                headers.append((cid_header, cid.encode("latin-1")))
                message = {**message, "headers": headers}
            await send(message)

        try:
            await self.app(scope, receive, send_with_correlation)
        finally:
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.info(
                f"{scope['method']} {loggable_path(scope['path'])} -> {status} ({elapsed_ms:.0f} ms)"
            )


class ErrorBoundaryMiddleware:
    """Last-resort handler for exceptions no route caught.

    Answers 500 {"error": "Internal server error", "correlationId": ...}
    in every environment. If the response had already started, the
    exception is re-raised so the server drops the connection.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False

        async def tracking_send(message):
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, receive, tracking_send)
        except Exception as exc:
            logger.error(f"Unhandled exception on {loggable_path(scope['path'])}: {exc}", exc_info=True)
            if response_started:
                raise

            cid = get_correlation_id()
            await send({
                "type": "http.response.start",
                "status": 500,
                "headers": [
                    (b"content-type", b"application/json"),
                    (CORRELATION_HEADER.encode(), cid.encode("latin-1")),
                ],
            })
            await send({
                "type": "http.response.body",
                "body": json.dumps({"error": "Internal server error", "correlationId": cid}).encode(),
            })
