"""High-level entry points wiring the API, store, terminal and loader together."""

from __future__ import annotations

import asyncio
import logging

from ._http import HTTPConfig
from .containers import APIClient, AsyncAPIClient, ContainerStore, CreateStrategy
from .containers.models import Container
from .containers.orchestrator import CompleteCallback, ErrorCallback, ProgressCallback
from .terminal import DEFAULT_COLS, DEFAULT_ROWS, ResourceLoader, TerminalClient, TerminalSession
from .terminal.session import BinaryCallback, CloseCallback, DataCallback
from .terminal.session import ErrorCallback as TerminalErrorCallback

logger = logging.getLogger(__name__)

CORE_MODULES = ("rexec.terminal.shell",)

_default_loader: ResourceLoader | None = None


def default_loader() -> ResourceLoader:
    """Process-wide loader for the interactive shell capability."""
    global _default_loader
    if _default_loader is None:
        _default_loader = ResourceLoader.for_modules(CORE_MODULES)
    return _default_loader


class AsyncRexecClient:
    """Async client for one user session against a Rexec backend.

    Example:
        client = AsyncRexecClient(token="...")
        await client.containers.fetch()
        container = await client.create_container("dev", "ubuntu")
        session = await client.open_terminal(container.id, on_data=print)
    """

    def __init__(
        self,
        *,
        token: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        strategy: CreateStrategy | str | None = None,
        loader: ResourceLoader | None = None,
    ) -> None:
        self.config = HTTPConfig.from_env(token=token, base_url=base_url, timeout=timeout)
        self.api = AsyncAPIClient(config=self.config)
        self.containers = ContainerStore(self.api, strategy=strategy)
        self.terminal = TerminalClient(self.config)
        self.loader = loader or default_loader()

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
        """Create a container, warming the terminal capabilities meanwhile."""
        self.loader.preload()
        return await self.containers.create(
            name,
            image,
            custom_image,
            on_progress=on_progress,
            on_complete=on_complete,
            on_error=on_error,
            strategy=strategy,
        )

    async def open_terminal(
        self,
        container_id: str,
        cols: int = DEFAULT_COLS,
        rows: int = DEFAULT_ROWS,
        *,
        on_data: DataCallback | None = None,
        on_binary: BinaryCallback | None = None,
        on_close: CloseCallback | None = None,
        on_error: TerminalErrorCallback | None = None,
    ) -> TerminalSession:
        """Connect to a container's terminal once its capabilities are loaded.

        The capability load and the WebSocket handshake run concurrently.
        """
        connect = asyncio.ensure_future(
            self.terminal.connect(
                container_id,
                cols,
                rows,
                on_data=on_data,
                on_binary=on_binary,
                on_close=on_close,
                on_error=on_error,
            )
        )
        try:
            await self.loader.load_core()
        except BaseException:
            # Already-finished handshakes cannot be cancelled; close what they opened.
            if not connect.cancel() and connect.exception() is None:
                await connect.result().close()
            raise
        return await connect


class RexecClient:
    """Sync client for container management (no streaming or terminal)."""

    def __init__(
        self,
        *,
        token: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.config = HTTPConfig.from_env(token=token, base_url=base_url, timeout=timeout)
        self.containers = APIClient(config=self.config)


__all__ = ["AsyncRexecClient", "RexecClient", "default_loader", "CORE_MODULES"]
