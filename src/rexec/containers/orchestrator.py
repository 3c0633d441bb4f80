"""Container creation workflow.

Two strategies produce the same client-observable result:

* ``streaming`` posts to ``/api/containers/stream`` and follows the server's
  progress events until one of them completes or fails the creation.
* ``fallback`` posts to ``/api/containers`` and waits for the single response.
  Some proxies buffer or drop ``text/event-stream`` responses; this path works
  behind them at the cost of coarse progress.

Either way the store's ``creating`` slot is set for exactly as long as the
creation is in flight, and exactly one of ``on_complete`` / ``on_error`` fires.
"""

from __future__ import annotations

import abc
import logging
import os
from collections.abc import Callable
from contextlib import aclosing
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING

import httpx

from .._http import require_token
from ..errors import (
    APIError,
    AuthenticationError,
    CreationInProgressError,
    InvalidResponseError,
    RexecError,
    StreamError,
)
from .api_client import AsyncAPIClient
from .models import Container, ProgressEvent
from .sse import ProgressStreamParser

if TYPE_CHECKING:
    from .store import ContainerStore

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]
CompleteCallback = Callable[[Container], None]
ErrorCallback = Callable[[str], None]

CREATE_FAILED_MESSAGE = "Failed to create container"
STREAM_ERROR_MESSAGE = "Connection lost while creating container"
STREAM_ENDED_MESSAGE = "Stream ended before the container was ready"


class CreateStrategy(str, Enum):
    """How a container creation talks to the backend."""

    STREAMING = "streaming"
    FALLBACK = "fallback"

    @classmethod
    def resolve(cls, value: CreateStrategy | str | None = None) -> CreateStrategy:
        """Coerce ``value``, falling back to REXEC_CREATE_STRATEGY, then streaming."""
        if value is None:
            value = os.getenv("REXEC_CREATE_STRATEGY") or cls.STREAMING
        if isinstance(value, cls):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(
                f"Unknown creation strategy {value!r}; expected 'streaming' or 'fallback'"
            ) from None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Creation:
    """One in-flight creation: routes events to the store and the callbacks.

    The first completion or error wins; anything after it is ignored.
    """

    def __init__(
        self,
        store: ContainerStore,
        name: str,
        image: str,
        *,
        on_progress: ProgressCallback | None = None,
        on_complete: CompleteCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> None:
        self.name = name
        self.image = image
        self.completed = False
        self.container: Container | None = None
        self.error: str | None = None
        self._store = store
        self._on_progress = on_progress
        self._on_complete = on_complete
        self._on_error = on_error

    def handle(self, event: ProgressEvent, *, container: Container | None = None) -> None:
        if self.completed:
            return
        self._store.report_progress(event)
        if self._on_progress is not None:
            self._on_progress(event)
        if event.complete and event.container_id:
            self.complete(container or self._materialize(event.container_id))
        elif event.error:
            self.fail(event.error)

    def complete(self, container: Container) -> None:
        if self.completed:
            return
        self.completed = True
        self.container = container
        self._store.complete_creation(container)
        logger.info("Container %s (%s) is ready", container.id, container.name)
        if self._on_complete is not None:
            self._on_complete(container)

    def fail(self, message: str) -> None:
        if self.completed:
            return
        self.completed = True
        self.error = message
        self._store.fail_creation(message)
        logger.warning("Container creation for %r failed: %s", self.name, message)
        if self._on_error is not None:
            self._on_error(message)

    def _materialize(self, container_id: str) -> Container:
        return Container(
            id=container_id,
            name=self.name,
            image=self.image,
            status="running",
            created_at=_now(),
        )


class CreationStrategy(abc.ABC):
    @abc.abstractmethod
    async def run(
        self,
        client: AsyncAPIClient,
        creation: Creation,
        custom_image: str | None,
    ) -> None:
        """Drive ``creation`` to completion or failure."""
        ...


class StreamingStrategy(CreationStrategy):
    """Follow the server-sent progress stream."""

    async def run(
        self,
        client: AsyncAPIClient,
        creation: Creation,
        custom_image: str | None,
    ) -> None:
        parser = ProgressStreamParser()
        try:
            async with aclosing(
                client.stream_create_container(
                    name=creation.name, image=creation.image, custom_image=custom_image
                )
            ) as chunks:
                async for chunk in chunks:
                    for event in parser.feed(chunk):
                        creation.handle(event)
            for event in parser.flush():
                creation.handle(event)
        except StreamError as exc:
            logger.debug("Progress stream broke: %s", exc)
            creation.fail(STREAM_ERROR_MESSAGE)
            return
        except httpx.TransportError as exc:
            logger.debug("Progress stream could not be opened: %s", exc)
            creation.fail(STREAM_ERROR_MESSAGE)
            return
        except APIError as exc:
            creation.fail(exc.message or CREATE_FAILED_MESSAGE)
            return
        except RexecError as exc:
            creation.fail(str(exc) or CREATE_FAILED_MESSAGE)
            return

        if not creation.completed:
            creation.fail(STREAM_ENDED_MESSAGE)


class FallbackStrategy(CreationStrategy):
    """Single request/response creation."""

    async def run(
        self,
        client: AsyncAPIClient,
        creation: Creation,
        custom_image: str | None,
    ) -> None:
        creation.handle(
            ProgressEvent(
                stage="creating",
                message="Creating container (this may take a moment)...",
                progress=10,
            )
        )
        try:
            container = await client.create_container(
                name=creation.name, image=creation.image, custom_image=custom_image
            )
        except APIError as exc:
            creation.fail(exc.message or CREATE_FAILED_MESSAGE)
            return
        except InvalidResponseError as exc:
            logger.debug("Unusable creation response: %s", exc)
            creation.fail(CREATE_FAILED_MESSAGE)
            return
        except (RexecError, httpx.HTTPError) as exc:
            creation.fail(str(exc) or CREATE_FAILED_MESSAGE)
            return

        creation.handle(
            ProgressEvent(
                stage="ready",
                message="Terminal ready!",
                progress=100,
                complete=True,
                container_id=container.id,
            ),
            container=container,
        )


_STRATEGIES: dict[CreateStrategy, CreationStrategy] = {
    CreateStrategy.STREAMING: StreamingStrategy(),
    CreateStrategy.FALLBACK: FallbackStrategy(),
}


class CreationOrchestrator:
    """Runs container creations against ``client`` and publishes into ``store``.

    Only one creation may be in flight per store: progress events carry no
    request identifier, so a second concurrent creation would receive the
    first one's events.
    """

    def __init__(
        self,
        client: AsyncAPIClient,
        store: ContainerStore,
        *,
        strategy: CreateStrategy | str | None = None,
    ) -> None:
        self._client = client
        self._store = store
        self.strategy = CreateStrategy.resolve(strategy)

    async def create_container(
        self,
        name: str,
        image: str,
        custom_image: str | None = None,
        *,
        on_progress: ProgressCallback | None = None,
        on_complete: CompleteCallback | None = None,
        on_error: ErrorCallback | None = None,
        strategy: CreateStrategy | str | None = None,
    ) -> Container | None:
        """Create a container and return it, or ``None`` if creation failed.

        Failures are reported through ``on_error`` (and the store's ``error``),
        never raised.

        Raises:
            CreationInProgressError: If this store already has a creation in flight.
        """
        if self._store.is_creating:
            raise CreationInProgressError(
                f"Container {self._store.creating.name!r} is still being created"  # type: ignore[union-attr]
            )

        chosen = CreateStrategy.resolve(strategy) if strategy is not None else self.strategy

        # Missing credentials fail before the store or the network is touched.
        try:
            require_token(self._client.config.token)
        except AuthenticationError as exc:
            if on_error is not None:
                on_error(str(exc))
            return None

        creation = Creation(
            self._store,
            name,
            image,
            on_progress=on_progress,
            on_complete=on_complete,
            on_error=on_error,
        )
        logger.debug("Creating container %r from %r (%s)", name, image, chosen.value)
        self._store.begin_creation(name, image)
        try:
            await _STRATEGIES[chosen].run(self._client, creation, custom_image)
        finally:
            if not creation.completed:
                # Cancelled, or a callback raised: never leave the slot occupied.
                self._store.abort_creation()
        return creation.container


__all__ = [
    "CreateStrategy",
    "CreationOrchestrator",
    "CreationStrategy",
    "StreamingStrategy",
    "FallbackStrategy",
    "Creation",
    "CREATE_FAILED_MESSAGE",
    "STREAM_ERROR_MESSAGE",
    "STREAM_ENDED_MESSAGE",
]
