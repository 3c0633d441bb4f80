"""HTTP configuration for Rexec API clients."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from urllib.parse import urlsplit, urlunsplit

from ..errors import AuthenticationError

DEFAULT_BASE_URL = "https://rexec.dev"
DEFAULT_TIMEOUT = 30.0


def resolve_base_url(base_url: str | None = None) -> str:
    """Resolve the backend origin from argument, REXEC_BASE_URL or the default."""
    resolved = base_url or os.getenv("REXEC_BASE_URL") or DEFAULT_BASE_URL
    return resolved.rstrip("/")


@dataclass
class HTTPConfig:
    """Configuration for HTTP requests to the Rexec API."""

    base_url: str = DEFAULT_BASE_URL
    timeout: float = DEFAULT_TIMEOUT
    token: str | None = None
    default_headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_env(
        cls,
        *,
        token: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
    ) -> HTTPConfig:
        return cls(
            base_url=resolve_base_url(base_url),
            timeout=timeout if timeout is not None else DEFAULT_TIMEOUT,
            token=token,
        )

    def get_headers(self, bearer: str) -> dict[str, str]:
        """Build request headers with authorization."""
        headers = {
            "authorization": f"Bearer {bearer}",
            "accept": "application/json",
            "content-type": "application/json",
            **self.default_headers,
        }
        return headers

    def websocket_url(self, path: str) -> str:
        """Map the HTTP origin onto its WebSocket counterpart.

        ``http`` becomes ``ws`` and ``https`` becomes ``wss``; host and port are
        kept as-is.
        """
        parts = urlsplit(self.base_url)
        scheme = "wss" if parts.scheme == "https" else "ws"
        path, _, query = path.partition("?")
        return urlunsplit((scheme, parts.netloc, parts.path.rstrip("/") + path, query, ""))


def require_token(token: str | None) -> str:
    """Resolve token from argument or environment, raising if not found."""
    env_token = os.getenv("REXEC_TOKEN")
    resolved = token or env_token
    if not resolved:
        raise AuthenticationError("Not authenticated. Pass token=... or set REXEC_TOKEN.")
    return resolved


__all__ = [
    "HTTPConfig",
    "DEFAULT_BASE_URL",
    "DEFAULT_TIMEOUT",
    "require_token",
    "resolve_base_url",
]
