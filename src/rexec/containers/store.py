"""Session state store for the caller's containers.

The store is the single source of truth for container lifecycle status. Its
state is an immutable :class:`ContainersState` snapshot; every mutation swaps
in a complete new snapshot and then notifies subscribers, so no subscriber
ever observes a half-applied change.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace

from ..errors import RexecError
from .api_client import AsyncAPIClient
from .models import Container, ContainerStatus, CreatingContainer, ProgressEvent, StartResult
from .orchestrator import (
    CompleteCallback,
    CreateStrategy,
    CreationOrchestrator,
    ErrorCallback,
    ProgressCallback,
)

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 2
BUSY_STATUS: ContainerStatus = "creating"


@dataclass(frozen=True)
class ContainersState:
    containers: tuple[Container, ...] = ()
    is_loading: bool = False
    error: str | None = None
    limit: int = DEFAULT_LIMIT
    creating: CreatingContainer | None = None


Subscriber = Callable[[ContainersState], None]


class ContainerStore:
    """Holds the caller's containers and the at-most-one creation in flight.

    Start, stop and delete are optimistic: the container shows the busy
    ``creating`` status while the request runs and is rolled back to its
    previous status if the request fails.

    Example:
        store = ContainerStore(AsyncAPIClient())
        unsubscribe = store.subscribe(lambda state: print(len(state.containers)))
        await store.fetch()
        await store.create("dev", "ubuntu")
    """

    def __init__(
        self,
        client: AsyncAPIClient,
        *,
        strategy: CreateStrategy | str | None = None,
    ) -> None:
        self._client = client
        self._state = ContainersState()
        self._subscribers: list[Subscriber] = []
        self._orchestrator = CreationOrchestrator(client, self, strategy=strategy)

    # Subscription

    @property
    def state(self) -> ContainersState:
        return self._state

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """Call ``subscriber`` with the current state now and after every change.

        Returns:
            A callable that removes the subscription.
        """
        self._subscribers.append(subscriber)
        subscriber(self._state)

        def unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return unsubscribe

    def _set(self, **changes: object) -> None:
        self._state = replace(self._state, **changes)  # type: ignore[arg-type]
        for subscriber in list(self._subscribers):
            subscriber(self._state)

    # Derived views

    @property
    def containers(self) -> tuple[Container, ...]:
        return self._state.containers

    @property
    def running(self) -> tuple[Container, ...]:
        return tuple(c for c in self._state.containers if c.status == "running")

    @property
    def stopped(self) -> tuple[Container, ...]:
        return tuple(c for c in self._state.containers if c.status == "stopped")

    @property
    def count(self) -> int:
        return len(self._state.containers)

    @property
    def limit(self) -> int:
        return self._state.limit

    @property
    def is_at_limit(self) -> bool:
        return self.count >= self._state.limit

    @property
    def is_creating(self) -> bool:
        return self._state.creating is not None

    @property
    def creating(self) -> CreatingContainer | None:
        return self._state.creating

    @property
    def is_loading(self) -> bool:
        return self._state.is_loading

    @property
    def error(self) -> str | None:
        return self._state.error

    def find(self, container_id: str) -> Container | None:
        for container in self._state.containers:
            if container.id == container_id:
                return container
        return None

    # Helpers

    def _map(
        self, container_id: str, fn: Callable[[Container], Container]
    ) -> tuple[Container, ...]:
        return tuple(fn(c) if c.id == container_id else c for c in self._state.containers)

    def _set_status(self, container_id: str, status: ContainerStatus) -> None:
        self._set(
            containers=self._map(container_id, lambda c: c.model_copy(update={"status": status}))
        )

    def _begin_busy(self, container_id: str) -> ContainerStatus | None:
        """Mark a container busy; return its status from before the transition."""
        existing = self.find(container_id)
        if existing is None:
            return None
        self._set_status(container_id, BUSY_STATUS)
        return existing.status

    def _rollback(self, container_id: str, prior: ContainerStatus | None) -> None:
        if prior is not None:
            self._set_status(container_id, prior)

    # Operations

    def reset(self) -> None:
        """Drop all state; subscriptions are kept."""
        self._state = ContainersState()
        for subscriber in list(self._subscribers):
            subscriber(self._state)

    async def fetch(self) -> tuple[Container, ...]:
        """Replace the collection with the server's list."""
        self._set(is_loading=True, error=None)
        try:
            resp = await self._client.list_containers()
        except RexecError as exc:
            self._set(is_loading=False, error=str(exc))
            raise
        except BaseException:
            self._set(is_loading=False)
            raise
        self._set(
            containers=tuple(resp.containers),
            limit=resp.limit or DEFAULT_LIMIT,
            is_loading=False,
            error=None,
        )
        return self._state.containers

    async def get(self, container_id: str) -> Container:
        """Fetch one container and merge it into the matching record, if held."""
        container = await self._client.get_container(container_id=container_id)
        fields = container.model_dump(exclude_unset=True)
        self._set(containers=self._map(container_id, lambda c: c.model_copy(update=fields)))
        return container

    async def create(
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
        """Create a container; see :meth:`CreationOrchestrator.create_container`."""
        return await self._orchestrator.create_container(
            name,
            image,
            custom_image,
            on_progress=on_progress,
            on_complete=on_complete,
            on_error=on_error,
            strategy=strategy,
        )

    async def start(self, container_id: str) -> StartResult:
        """Start a container.

        When the server recreates the container under a new id, the record's id
        is replaced in place and the new id is reported in the result.
        """
        prior = self._begin_busy(container_id)
        try:
            resp = await self._client.start_container(container_id=container_id)
        except BaseException:
            self._rollback(container_id, prior)
            raise

        if resp.recreated and resp.id and resp.id != container_id:
            new_id = resp.id
            self._set(
                containers=self._map(
                    container_id,
                    lambda c: c.model_copy(update={"id": new_id, "status": "running"}),
                )
            )
            logger.info("Container %s was recreated as %s", container_id, new_id)
            return StartResult(container_id=new_id, recreated=True)

        self._set_status(container_id, "running")
        return StartResult(container_id=container_id)

    async def stop(self, container_id: str) -> None:
        """Stop a container, restoring its previous status if the request fails."""
        prior = self._begin_busy(container_id)
        try:
            await self._client.stop_container(container_id=container_id)
        except BaseException:
            self._rollback(container_id, prior)
            raise
        self._set_status(container_id, "stopped")

    async def delete(self, container_id: str) -> None:
        """Delete a container and drop its record."""
        prior = self._begin_busy(container_id)
        try:
            await self._client.delete_container(container_id=container_id)
        except BaseException:
            self._rollback(container_id, prior)
            raise
        self._set(containers=tuple(c for c in self._state.containers if c.id != container_id))

    def update_status(self, container_id: str, status: ContainerStatus) -> None:
        """Set a container's status locally, without a server call."""
        self._set_status(container_id, status)

    # Creation lifecycle, driven by CreationOrchestrator

    def begin_creation(self, name: str, image: str) -> None:
        self._set(
            creating=CreatingContainer(
                name=name, image=image, progress=0, message="Initializing...", stage="initializing"
            ),
            is_loading=True,
            error=None,
        )

    def report_progress(self, event: ProgressEvent) -> None:
        creating = self._state.creating
        if creating is None:
            return
        progress = max(0, min(100, int(round(event.progress))))
        self._set(
            creating=creating.model_copy(
                update={
                    "progress": progress,
                    "message": event.message or creating.message,
                    "stage": event.stage or creating.stage,
                }
            )
        )

    def complete_creation(self, container: Container) -> None:
        remaining = _without(self._state.containers, container.id)
        self._set(
            containers=(container, *remaining),
            creating=None,
            is_loading=False,
            error=None,
        )

    def fail_creation(self, message: str) -> None:
        self._set(creating=None, is_loading=False, error=message)

    def abort_creation(self) -> None:
        if self._state.creating is not None or self._state.is_loading:
            self._set(creating=None, is_loading=False)


def _without(containers: Iterable[Container], container_id: str) -> tuple[Container, ...]:
    return tuple(c for c in containers if c.id != container_id)


__all__ = ["ContainerStore", "ContainersState", "DEFAULT_LIMIT", "BUSY_STATUS"]
