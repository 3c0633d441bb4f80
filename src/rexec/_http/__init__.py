"""Shared HTTP infrastructure for Rexec API clients."""

from .config import DEFAULT_BASE_URL, DEFAULT_TIMEOUT, HTTPConfig, require_token, resolve_base_url
from .iter_coroutine import iter_coroutine
from .transport import AsyncTransport, BaseTransport, BlockingTransport, JSONBody, RequestBody

__all__ = [
    "DEFAULT_BASE_URL",
    "DEFAULT_TIMEOUT",
    "HTTPConfig",
    "require_token",
    "resolve_base_url",
    "iter_coroutine",
    "BaseTransport",
    "BlockingTransport",
    "AsyncTransport",
    "JSONBody",
    "RequestBody",
]
