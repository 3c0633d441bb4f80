"""Error types raised by the Rexec client."""

from __future__ import annotations

from typing import Any

import httpx


class RexecError(Exception):
    """Base class for all Rexec client errors."""


class AuthenticationError(RexecError):
    """No bearer credential is available; raised before any request is made."""


class APIError(RexecError):
    """Non-success HTTP response from the Rexec API."""

    def __init__(self, response: httpx.Response, message: str, *, data: Any | None = None):
        super().__init__(message)
        self.response = response
        self.status_code = response.status_code
        self.data = data

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else ""


class InvalidResponseError(RexecError):
    """A successful response whose body is not the expected shape."""


class StreamError(RexecError):
    """The container creation progress stream failed mid-read."""


class CreationInProgressError(RexecError):
    """A container creation was requested while another one is still in flight."""


class TerminalConnectionError(RexecError):
    """The terminal WebSocket could not be established."""


__all__ = [
    "RexecError",
    "AuthenticationError",
    "APIError",
    "InvalidResponseError",
    "StreamError",
    "CreationInProgressError",
    "TerminalConnectionError",
]
