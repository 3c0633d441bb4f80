"""Opens terminal sessions for containers."""

from __future__ import annotations

from .._http import HTTPConfig, require_token
from .protocol import DEFAULT_COLS, DEFAULT_ROWS, terminal_path
from .session import BinaryCallback, CloseCallback, DataCallback, ErrorCallback, TerminalSession


class TerminalClient:
    """Connects to ``/ws/terminal/{id}`` on the configured backend."""

    def __init__(self, config: HTTPConfig) -> None:
        self._config = config

    def url_for(self, container_id: str, cols: int = DEFAULT_COLS, rows: int = DEFAULT_ROWS) -> str:
        return self._config.websocket_url(terminal_path(container_id, cols, rows))

    async def connect(
        self,
        container_id: str,
        cols: int = DEFAULT_COLS,
        rows: int = DEFAULT_ROWS,
        *,
        on_data: DataCallback | None = None,
        on_binary: BinaryCallback | None = None,
        on_close: CloseCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> TerminalSession:
        """Open a terminal on ``container_id`` sized ``cols`` x ``rows``.

        Raises:
            AuthenticationError: If no token is configured (no connection is attempted).
            TerminalConnectionError: If the WebSocket handshake fails.
        """
        token = require_token(self._config.token)
        return await TerminalSession.connect(
            self.url_for(container_id, cols, rows),
            token,
            on_data=on_data,
            on_binary=on_binary,
            on_close=on_close,
            on_error=on_error,
        )


__all__ = ["TerminalClient"]
