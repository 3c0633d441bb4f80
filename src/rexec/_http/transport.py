"""HTTP transport implementations for sync and async clients."""

from __future__ import annotations

import abc
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import httpx

from .config import HTTPConfig, require_token


@dataclass(frozen=True, slots=True)
class JSONBody:
    """JSON request body - sent with Content-Type application/json."""

    data: Any


RequestBody = JSONBody | None


class BaseTransport(abc.ABC):
    """Abstract base class for HTTP transports."""

    def __init__(self, config: HTTPConfig) -> None:
        self._config = config

    @property
    def config(self) -> HTTPConfig:
        return self._config

    def _require_token(self) -> str:
        """Resolve and validate the API token."""
        return require_token(self._config.token)

    def _prepare(
        self,
        path: str,
        headers: dict[str, str] | None,
        timeout: float | None,
    ) -> tuple[str, dict[str, str], float]:
        bearer = self._require_token()
        url = self._config.base_url.rstrip("/") + path
        effective_timeout = timeout if timeout is not None else self._config.timeout
        request_headers = self._config.get_headers(bearer)
        if headers:
            request_headers.update(headers)
        return url, request_headers, effective_timeout

    @abc.abstractmethod
    async def send(
        self,
        method: str,
        path: str,
        *,
        body: RequestBody = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        """Send an HTTP request and return the response."""
        ...


class BlockingTransport(BaseTransport):
    """
    Synchronous HTTP transport using httpx.Client.

    Methods are declared async but don't actually await anything,
    allowing them to be executed via iter_coroutine().
    """

    async def send(
        self,
        method: str,
        path: str,
        *,
        body: RequestBody = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        """Send a synchronous HTTP request (wrapped as async for iter_coroutine)."""
        url, request_headers, effective_timeout = self._prepare(path, headers, timeout)
        json_data = body.data if isinstance(body, JSONBody) else None

        # Use a fresh client for each request (ephemeral pattern)
        with httpx.Client(timeout=httpx.Timeout(effective_timeout)) as client:
            resp = client.request(method, url, json=json_data, headers=request_headers)
        return resp


class AsyncTransport(BaseTransport):
    """Asynchronous HTTP transport using httpx.AsyncClient."""

    async def send(
        self,
        method: str,
        path: str,
        *,
        body: RequestBody = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        """Send an asynchronous HTTP request."""
        url, request_headers, effective_timeout = self._prepare(path, headers, timeout)
        json_data = body.data if isinstance(body, JSONBody) else None

        # Use a fresh client for each request (ephemeral pattern)
        async with httpx.AsyncClient(timeout=httpx.Timeout(effective_timeout)) as client:
            resp = await client.request(method, url, json=json_data, headers=request_headers)
        return resp

    @asynccontextmanager
    async def stream(
        self,
        method: str,
        path: str,
        *,
        body: RequestBody = None,
        headers: dict[str, str] | None = None,
    ) -> AsyncIterator[httpx.Response]:
        """Open a streaming request; the body is read by the caller.

        Only the connect phase is bounded by the configured timeout. Reads wait
        as long as the server keeps the stream open.
        """
        url, request_headers, effective_timeout = self._prepare(path, headers, None)
        json_data = body.data if isinstance(body, JSONBody) else None
        timeout = httpx.Timeout(effective_timeout, read=None)

        async with httpx.AsyncClient(timeout=timeout) as client:
            async with client.stream(
                method, url, json=json_data, headers=request_headers
            ) as resp:
                yield resp


__all__ = [
    "BaseTransport",
    "BlockingTransport",
    "AsyncTransport",
    "JSONBody",
    "RequestBody",
]
