"""Terminal transport, framing and rendering-capability loading."""

from __future__ import annotations

from .client import TerminalClient
from .loader import DeviceHint, LoadCache, LoadingInfo, LoadState, NetworkHint, ResourceLoader
from .protocol import DEFAULT_COLS, DEFAULT_ROWS, resize, terminal_path
from .session import SessionState, TerminalSession

__all__ = [
    "TerminalClient",
    "TerminalSession",
    "SessionState",
    # Loader
    "ResourceLoader",
    "LoadCache",
    "LoadState",
    "LoadingInfo",
    "NetworkHint",
    "DeviceHint",
    # Protocol
    "DEFAULT_COLS",
    "DEFAULT_ROWS",
    "resize",
    "terminal_path",
]
