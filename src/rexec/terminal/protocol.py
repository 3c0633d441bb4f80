"""Terminal WebSocket framing.

Client to server, everything travels as text frames on one channel:

    raw keystrokes          e.g. "ls -la\\r"
    resize control message  {"type": "resize", "cols": N, "rows": N}

Server to client, text frames carry UTF-8 shell output and binary frames carry
raw output bytes. The server tells control JSON apart from keystrokes.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from urllib.parse import quote, urlencode

DEFAULT_COLS = 80
DEFAULT_ROWS = 24


class FrameKind(str, Enum):
    TEXT = "text"
    BINARY = "binary"


@dataclass(frozen=True)
class Frame:
    """A frame received from the server."""

    kind: FrameKind
    payload: str | bytes

    @classmethod
    def from_ws(cls, data: str | bytes) -> Frame:
        if isinstance(data, str):
            return cls(FrameKind.TEXT, data)
        return cls(FrameKind.BINARY, bytes(data))


def resize(cols: int, rows: int) -> str:
    """Create a resize control message.

    Raises:
        ValueError: If either dimension is not a positive integer.
    """
    if cols <= 0 or rows <= 0:
        raise ValueError(f"Terminal size must be positive, got {cols}x{rows}")
    return json.dumps({"type": "resize", "cols": cols, "rows": rows})


def terminal_path(container_id: str, cols: int = DEFAULT_COLS, rows: int = DEFAULT_ROWS) -> str:
    """Path and query of a container's terminal endpoint."""
    query = urlencode({"cols": cols, "rows": rows})
    return f"/ws/terminal/{quote(container_id, safe='')}?{query}"


__all__ = [
    "DEFAULT_COLS",
    "DEFAULT_ROWS",
    "Frame",
    "FrameKind",
    "resize",
    "terminal_path",
]
