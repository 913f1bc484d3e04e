from __future__ import annotations

import json
from types import MappingProxyType
from typing import Any, Mapping
from urllib.parse import parse_qsl

import structlog
from fastapi.encoders import jsonable_encoder
from pydantic import TypeAdapter, ValidationError
from starlette.datastructures import MutableHeaders
from starlette.requests import Request
from starlette.responses import FileResponse, RedirectResponse, Response

from easyroute.errors import DecodeError
from easyroute.observability.logging import Logger


JSON_CONTENT_TYPE = "application/json;charset=utf-8"
JSON_RESPONSE_CONTENT_TYPE = "application/json; charset=utf-8"

_BODY_METHODS = frozenset({"POST", "PUT"})
_FORM_METHODS = frozenset({"POST", "PUT", "PATCH"})
_FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
_RESPONSE_OWNED_HEADERS = frozenset({"location", "content-type", "content-length"})


class ResponseSink:
    """Collects what a handler writes and turns it into one Starlette response.

    Writes are buffered; nothing is sent until the pipeline finishes. A complete
    response (redirect, file) set via ``replace`` wins over buffered content.
    """

    def __init__(self) -> None:
        self.status_code = 200
        self.headers = MutableHeaders()
        self._buffer = bytearray()
        self._header_written = False
        self._response: Response | None = None

    @property
    def written(self) -> bool:
        return self._header_written or bool(self._buffer) or self._response is not None

    def set_header(self, name: str, value: str) -> None:
        self.headers[name] = value

    def write_header(self, status_code: int) -> None:
        # First status wins, later calls are ignored.
        if self._header_written:
            return
        self.status_code = status_code
        self._header_written = True

    def write(self, data: bytes | str) -> int:
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._header_written = True
        self._buffer.extend(data)
        return len(data)

    def replace(self, response: Response) -> None:
        self._response = response

    def to_response(self) -> Response:
        if self._response is not None:
            for name, value in self.headers.items():
                if name not in _RESPONSE_OWNED_HEADERS:
                    self._response.headers[name] = value
            return self._response
        return Response(content=bytes(self._buffer), status_code=self.status_code, headers=dict(self.headers))


class RequestContext:
    """Accessor for a single exchange, handed to gates and handlers."""

    def __init__(self, request: Request, body: bytes = b"", *, logger: Logger | None = None) -> None:
        self.request = request
        self.writer = ResponseSink()
        self.user_uuid = ""
        self.session: dict[str, Any] = {}
        self._raw_body = body
        self._logger = logger or Logger()
        self._vars = MappingProxyType({key: str(value) for key, value in request.path_params.items()})
        self._params = MappingProxyType(_parse_params(request, body))

    @property
    def method(self) -> str:
        return self.request.method

    @property
    def vars(self) -> Mapping[str, str]:
        """Route variables captured by the path template."""
        return self._vars

    @property
    def params(self) -> Mapping[str, tuple[str, ...]]:
        """Form and query parameters, each key mapped to all of its values."""
        return self._params

    @property
    def path(self) -> str:
        return self.request.url.path

    @property
    def origin(self) -> str:
        client = self.request.client
        if client is None:
            return ""
        return f"{client.host}:{client.port}"

    @property
    def raw_body(self) -> bytes:
        return self._raw_body

    def param_value(self, key: str, default: str = "") -> str:
        values = self._params.get(key)
        if values:
            return values[0]
        return default

    def body(self, model: Any = None) -> Any:
        """Decode the request body.

        Only POST and PUT carry a body here; other methods return ``None``.
        A ``Content-Type`` of exactly ``application/json;charset=utf-8``
        (any case) is decoded as JSON and, when ``model`` is given, validated
        into it. Any other content type returns the raw bytes.

        Raises:
            DecodeError: malformed JSON, or data that does not fit ``model``.
        """

        if self.request.method not in _BODY_METHODS:
            return None

        content_type = self.request.headers.get("content-type", "")
        if content_type.lower() != JSON_CONTENT_TYPE:
            return self._raw_body

        try:
            data = json.loads(self._raw_body)
        except ValueError as exc:
            raise DecodeError(f"malformed JSON body: {exc}", content_type=content_type) from exc

        if model is None:
            return data
        try:
            return TypeAdapter(model).validate_python(data)
        except ValidationError as exc:
            raise DecodeError(f"body does not match {getattr(model, '__name__', model)}: {exc}", content_type=content_type) from exc

    def session_value(self, key: str, default: Any = None) -> Any:
        return self.session.get(key, default)

    def set_session_value(self, key: str, value: Any) -> None:
        self.session[key] = value

    def set_header(self, name: str, value: str) -> None:
        self.writer.set_header(name, value)

    def write_header(self, status_code: int) -> None:
        self.writer.write_header(status_code)

    def write(self, data: bytes | str) -> int:
        return self.writer.write(data)

    def json(self, status_code: int, value: Any) -> None:
        """Send ``value`` as compact JSON followed by a newline.

        Values that cannot be encoded are logged and nothing is written.
        """

        try:
            payload = json.dumps(
                jsonable_encoder(value),
                ensure_ascii=False,
                separators=(",", ":"),
                allow_nan=False,
            )
        except (TypeError, ValueError) as exc:
            log_error = self._logger.error or structlog.get_logger("easyroute").error
            log_error("json_encode_failed", path=self.path, error=str(exc))
            return

        self.writer.set_header("Content-Type", JSON_RESPONSE_CONTENT_TYPE)
        self.writer.write_header(status_code)
        self.writer.write(payload.encode("utf-8"))
        self.writer.write(b"\n")

    def redirect(self, target: str) -> None:
        self.writer.replace(RedirectResponse(target, status_code=302))

    def send_file(self, path: str) -> None:
        self.writer.replace(FileResponse(path))

    def loggable_body(self, limit: int) -> Any:
        """Body representation for the access log, never raising.

        Decoded JSON is logged as-is unless its compact encoding exceeds
        ``limit``, in which case the truncated encoding is logged instead.
        """

        if self.request.method not in _BODY_METHODS:
            return None
        try:
            body = self.body()
        except DecodeError:
            body = self._raw_body
        if isinstance(body, bytes):
            return body.decode("utf-8", errors="replace")[:limit]
        encoded = json.dumps(body, ensure_ascii=False, separators=(",", ":"))
        if len(encoded) > limit:
            return encoded[:limit]
        return body


def _parse_params(request: Request, body: bytes) -> dict[str, tuple[str, ...]]:
    # Form body values come before query values for the same key.
    collected: dict[str, list[str]] = {}

    content_type = request.headers.get("content-type", "").split(";", 1)[0].strip().lower()
    if request.method in _FORM_METHODS and content_type == _FORM_CONTENT_TYPE and body:
        text = body.decode("utf-8", errors="replace")
        for key, value in parse_qsl(text, keep_blank_values=True):
            collected.setdefault(key, []).append(value)

    for key, value in request.query_params.multi_items():
        collected.setdefault(key, []).append(value)

    return {key: tuple(values) for key, values in collected.items()}
