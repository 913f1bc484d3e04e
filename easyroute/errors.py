from __future__ import annotations


class EasyRouteError(Exception):
    """Base class for errors raised by easyroute."""


class DecodeError(EasyRouteError, ValueError):
    """The request body could not be decoded into the requested shape."""

    def __init__(self, message: str, *, content_type: str | None = None) -> None:
        super().__init__(message)
        self.content_type = content_type
