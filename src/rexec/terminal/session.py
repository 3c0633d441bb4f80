"""Duplex terminal transport over a WebSocket.

A :class:`TerminalSession` owns one connection to a container's terminal. A
background receive loop delivers server frames to registered callbacks while
the caller writes keystrokes and resize messages concurrently.

Callback contract:

* ``data`` receives text frames (``str``), ``binary`` receives binary frames.
* ``error`` fires for a transport failure, and is always followed by ``close``.
* ``close`` fires once when the connection ends by itself, and once for every
  explicit :meth:`TerminalSession.close` call.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

import websockets
from websockets import ClientConnection, State

from ..errors import TerminalConnectionError
from . import protocol

logger = logging.getLogger(__name__)

DataCallback = Callable[[str], None]
BinaryCallback = Callable[[bytes], None]
CloseCallback = Callable[[], None]
ErrorCallback = Callable[[Exception], None]

EVENTS = ("data", "binary", "close", "error")
CLOSE_TIMEOUT = 5.0


class SessionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class TerminalSession:
    """Interactive terminal connection to a container.

    Like the rest of the client this uses a "hybrid" construction:
    - the constructor wraps an already-connected WebSocket (for testability)
    - :meth:`connect` opens a new connection (for convenience)

    Example:
        session = await TerminalSession.connect(url, token, on_data=print)
        async with session:
            await session.resize(120, 40)
            await session.write("uname -a\\r")
    """

    def __init__(
        self,
        ws: ClientConnection | None = None,
        *,
        on_data: DataCallback | None = None,
        on_binary: BinaryCallback | None = None,
        on_close: CloseCallback | None = None,
        on_error: ErrorCallback | None = None,
        close_timeout: float = CLOSE_TIMEOUT,
    ) -> None:
        self._ws = ws
        self._state = SessionState.CONNECTING
        self._listeners: dict[str, list[Callable[..., None]]] = {event: [] for event in EVENTS}
        self._cancel: asyncio.Event | None = None
        self._receive_task: asyncio.Task[None] | None = None
        self.close_timeout = close_timeout
        for event, callback in (
            ("data", on_data),
            ("binary", on_binary),
            ("close", on_close),
            ("error", on_error),
        ):
            if callback is not None:
                self.on(event, callback)

    @classmethod
    async def connect(
        cls,
        url: str,
        token: str,
        *,
        on_data: DataCallback | None = None,
        on_binary: BinaryCallback | None = None,
        on_close: CloseCallback | None = None,
        on_error: ErrorCallback | None = None,
        open_timeout: float | None = 10.0,
    ) -> TerminalSession:
        """Open a terminal connection and start receiving.

        The bearer credential travels in the ``Authorization`` handshake header,
        never in the URL. Callbacks passed here are registered before the first
        frame can arrive.

        Raises:
            TerminalConnectionError: If the handshake fails.
        """
        session = cls(on_data=on_data, on_binary=on_binary, on_close=on_close, on_error=on_error)
        try:
            ws = await websockets.connect(
                url,
                additional_headers={"Authorization": f"Bearer {token}"},
                open_timeout=open_timeout,
            )
        except (OSError, asyncio.TimeoutError, websockets.WebSocketException) as exc:
            session._state = SessionState.CLOSED
            raise TerminalConnectionError(f"Failed to connect to terminal: {exc}") from exc
        session._ws = ws
        session.start()
        logger.debug("Terminal session opened: %s", url.split("?", 1)[0])
        return session

    # Callback registration

    def on(self, event: str, callback: Callable[..., None]) -> Callable[[], None]:
        """Register ``callback`` for ``event``; returns a callable that removes it."""
        if event not in self._listeners:
            raise ValueError(f"Unknown terminal event {event!r}; expected one of {EVENTS}")
        self._listeners[event].append(callback)
        return lambda: self.off(event, callback)

    def off(self, event: str, callback: Callable[..., None]) -> None:
        """Remove a callback registered with :meth:`on`. Unknown callbacks are ignored."""
        listeners = self._listeners.get(event, [])
        if callback in listeners:
            listeners.remove(callback)

    def _emit(self, event: str, *args: Any) -> None:
        for callback in list(self._listeners[event]):
            callback(*args)

    # State

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_open(self) -> bool:
        """Whether writes will reach the server."""
        return (
            self._state is SessionState.OPEN
            and self._ws is not None
            and self._ws.state is State.OPEN
        )

    @property
    def _cancelled(self) -> bool:
        return self._cancel is not None and self._cancel.is_set()

    # Receive loop

    def start(self) -> None:
        """Start the receive loop on the wrapped connection.

        Must be called from a running event loop. Calling it again is a no-op.
        """
        if self._ws is None:
            raise RuntimeError("TerminalSession has no connection to start")
        if self._receive_task is not None:
            return
        self._cancel = asyncio.Event()
        self._state = SessionState.OPEN
        self._receive_task = asyncio.create_task(self._receive_loop())

    async def _receive_loop(self) -> None:
        ws = self._ws
        if ws is None:
            return
        try:
            while not self._cancelled:
                frame = protocol.Frame.from_ws(await ws.recv())
                if frame.kind is protocol.FrameKind.TEXT:
                    self._emit("data", frame.payload)
                else:
                    self._emit("binary", frame.payload)
        except websockets.ConnectionClosedOK:
            pass
        except Exception as exc:
            # ConnectionClosedError (no close frame, or an error code) lands here too.
            if not self._cancelled:
                logger.warning("Terminal transport error: %s", exc)
                self._emit("error", exc)
        finally:
            # A deliberate close() reports the close itself.
            if not self._cancelled:
                self._state = SessionState.CLOSED
                logger.debug("Terminal session closed by peer")
                self._emit("close")

    # Output

    async def write(self, data: str | bytes) -> None:
        """Send keystrokes (text frame) or raw input (binary frame).

        A no-op when the session is not open, so callers racing teardown need
        no guard of their own.
        """
        ws = self._ws
        if ws is None or not self.is_open:
            return
        try:
            await ws.send(data)
        except websockets.ConnectionClosed:
            logger.debug("Dropped terminal write after connection closed")

    async def resize(self, cols: int, rows: int) -> None:
        """Tell the server the terminal size changed."""
        await self.write(protocol.resize(cols, rows))

    # Teardown

    async def close(self) -> None:
        """Close the session. Safe to call repeatedly and from any state.

        Fires the ``close`` callbacks once per call, even if no connection was
        ever established.
        """
        if self._state is not SessionState.CLOSED:
            self._state = SessionState.CLOSING
        if self._cancel is not None:
            self._cancel.set()

        ws = self._ws
        if ws is not None and ws.state is not State.CLOSED:
            try:
                await ws.close()
            except (OSError, websockets.WebSocketException) as exc:
                logger.debug("Error while closing terminal connection: %s", exc)

        task = self._receive_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            done, _ = await asyncio.wait({task}, timeout=self.close_timeout)
            if not done:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

        self._state = SessionState.CLOSED
        self._emit("close")

    async def __aenter__(self) -> TerminalSession:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


__all__ = [
    "TerminalSession",
    "SessionState",
    "EVENTS",
    "CLOSE_TIMEOUT",
]
