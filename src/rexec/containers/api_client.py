"""Rexec containers API client."""

from __future__ import annotations

from collections.abc import AsyncGenerator

import httpx

from .._http import AsyncTransport, BlockingTransport, HTTPConfig, JSONBody, iter_coroutine
from ..errors import APIError, StreamError
from ._core import _BaseAPIClient, _parse_error_message, build_create_body
from .models import Container, ContainersResponse, StartContainerResponse

_STREAM_ERRORS = (httpx.TransportError, httpx.DecodingError)


class AsyncAPIClient(_BaseAPIClient):
    """Async client for container API operations."""

    def __init__(
        self,
        *,
        token: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        config: HTTPConfig | None = None,
    ):
        self._config = config or HTTPConfig.from_env(token=token, base_url=base_url, timeout=timeout)
        self._transport = AsyncTransport(self._config)

    @property
    def config(self) -> HTTPConfig:
        return self._config

    async def list_containers(self) -> ContainersResponse:
        """List the caller's containers along with the account limit."""
        return await self._list_containers()

    async def get_container(self, *, container_id: str) -> Container:
        """Get container by ID."""
        return await self._get_container(container_id=container_id)

    async def create_container(
        self, *, name: str, image: str, custom_image: str | None = None
    ) -> Container:
        """Create a container with a single request (no progress reporting)."""
        return await self._create_container(name=name, image=image, custom_image=custom_image)

    async def stream_create_container(
        self, *, name: str, image: str, custom_image: str | None = None
    ) -> AsyncGenerator[str, None]:
        """Create a container and stream the raw progress text as it arrives.

        Chunk boundaries are whatever the network delivers; framing is left to
        :class:`~rexec.containers.sse.ProgressStreamParser`.

        Raises:
            APIError: If the server rejects the request.
            StreamError: If the stream breaks before the server closes it.
        """
        async with self._transport.stream(
            "POST",
            "/api/containers/stream",
            headers=self._build_headers({"accept": "text/event-stream"}),
            body=JSONBody(build_create_body(name, image, custom_image)),
        ) as resp:
            if not 200 <= resp.status_code < 300:
                await resp.aread()
                message, parsed = _parse_error_message(resp)
                raise APIError(resp, message, data=parsed)
            try:
                async for chunk in resp.aiter_text():
                    if chunk:
                        yield chunk
            except _STREAM_ERRORS as exc:
                raise StreamError(f"Progress stream failed: {exc}") from exc

    async def start_container(self, *, container_id: str) -> StartContainerResponse:
        """Start a stopped container. The server may recreate it under a new ID."""
        return await self._start_container(container_id=container_id)

    async def stop_container(self, *, container_id: str) -> None:
        """Stop a running container."""
        await self._stop_container(container_id=container_id)

    async def delete_container(self, *, container_id: str) -> None:
        """Delete a container."""
        await self._delete_container(container_id=container_id)


class APIClient(_BaseAPIClient):
    """Sync client for container API operations."""

    def __init__(
        self,
        *,
        token: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        config: HTTPConfig | None = None,
    ):
        self._config = config or HTTPConfig.from_env(token=token, base_url=base_url, timeout=timeout)
        self._transport = BlockingTransport(self._config)

    @property
    def config(self) -> HTTPConfig:
        return self._config

    def list_containers(self) -> ContainersResponse:
        """List the caller's containers along with the account limit."""
        return iter_coroutine(self._list_containers())

    def get_container(self, *, container_id: str) -> Container:
        """Get container by ID."""
        return iter_coroutine(self._get_container(container_id=container_id))

    def create_container(
        self, *, name: str, image: str, custom_image: str | None = None
    ) -> Container:
        """Create a container with a single request."""
        return iter_coroutine(
            self._create_container(name=name, image=image, custom_image=custom_image)
        )

    def start_container(self, *, container_id: str) -> StartContainerResponse:
        """Start a stopped container."""
        return iter_coroutine(self._start_container(container_id=container_id))

    def stop_container(self, *, container_id: str) -> None:
        """Stop a running container."""
        iter_coroutine(self._stop_container(container_id=container_id))

    def delete_container(self, *, container_id: str) -> None:
        """Delete a container."""
        iter_coroutine(self._delete_container(container_id=container_id))


__all__ = ["APIClient", "AsyncAPIClient", "APIError"]
