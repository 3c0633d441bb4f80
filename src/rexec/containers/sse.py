"""Incremental parser for the container creation progress stream.

The server frames each event as ``data: <json>\\n\\n``. Network reads can split
a frame anywhere, so text is buffered until a delimiter is seen; the trailing
partial frame stays in the buffer for the next chunk.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from .models import ProgressEvent

logger = logging.getLogger(__name__)

EVENT_DELIMITER = "\n\n"
DATA_PREFIX = "data: "


def parse_frame(frame: str) -> list[ProgressEvent]:
    """Parse the ``data:`` lines of one complete frame.

    Lines that are not valid progress JSON are dropped.
    """
    events: list[ProgressEvent] = []
    for line in frame.split("\n"):
        line = line.rstrip("\r")
        if not line.startswith(DATA_PREFIX):
            continue
        payload = line[len(DATA_PREFIX) :]
        try:
            events.append(ProgressEvent.model_validate_json(payload))
        except ValidationError:
            logger.debug("Skipping malformed progress frame: %r", payload[:200])
    return events


class ProgressStreamParser:
    """Turns arbitrarily chunked stream text into progress events, in order."""

    def __init__(self) -> None:
        self._buffer = ""

    @property
    def pending(self) -> str:
        """Text received after the last complete frame."""
        return self._buffer

    def feed(self, chunk: str) -> list[ProgressEvent]:
        """Add ``chunk`` and return the events of every frame it completed."""
        self._buffer += chunk
        *frames, self._buffer = self._buffer.split(EVENT_DELIMITER)
        events: list[ProgressEvent] = []
        for frame in frames:
            events.extend(parse_frame(frame))
        return events

    def flush(self) -> list[ProgressEvent]:
        """Parse whatever is left at end of stream, then empty the buffer."""
        remaining, self._buffer = self._buffer, ""
        if not remaining.strip():
            return []
        return parse_frame(remaining)


__all__ = ["ProgressStreamParser", "parse_frame", "EVENT_DELIMITER", "DATA_PREFIX"]
