from __future__ import annotations

import uuid
from typing import Any, Callable

import structlog
from starlette.datastructures import MutableHeaders


class TracingMiddleware:
    """Tags every exchange with a request id and binds it into structlog contextvars.

    An inbound ``X-Request-ID`` is honoured so ids propagate across services.
    """

    def __init__(self, app: Callable[..., Any], service_name: str) -> None:
        self.app = app
        self.service_name = service_name

    async def __call__(self, scope: dict[str, Any], receive: Callable[..., Any], send: Callable[..., Any]) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        request_id = _incoming_request_id(scope) or str(uuid.uuid4())

        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            service=self.service_name,
        )

        async def send_wrapper(message: dict[str, Any]) -> None:
            if message.get("type") == "http.response.start":
                headers = MutableHeaders(scope=message)
                headers["X-Request-ID"] = request_id
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            structlog.contextvars.unbind_contextvars("request_id", "service")


def _incoming_request_id(scope: dict[str, Any]) -> str | None:
    for name, value in scope.get("headers") or []:
        if name == b"x-request-id" and value:
            return value.decode("latin-1")
    return None
