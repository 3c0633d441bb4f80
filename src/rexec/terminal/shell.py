"""Interactive terminal attach for a local TTY.

Puts the local terminal in raw mode and forwards keystrokes to a container's
terminal session, writing its output to stdout until either side closes.
POSIX only: this module is loaded through the resource loader so a host
without ``termios`` fails the load instead of the import of :mod:`rexec`.
"""

from __future__ import annotations

import asyncio
import codecs
import os
import signal
import sys
import termios
import tty

from .client import TerminalClient
from .protocol import DEFAULT_COLS, DEFAULT_ROWS
from .session import TerminalSession


def terminal_size() -> tuple[int, int]:
    try:
        cols, rows = os.get_terminal_size()
    except OSError:
        # Default size if not a terminal
        cols, rows = DEFAULT_COLS, DEFAULT_ROWS
    return cols, rows


def _write_stdout(data: bytes) -> None:
    sys.stdout.buffer.write(data)
    sys.stdout.buffer.flush()


async def run_shell(terminal: TerminalClient, container_id: str) -> None:
    """Attach the local terminal to ``container_id`` until the session ends."""
    cols, rows = terminal_size()
    closed = asyncio.Event()
    session = await terminal.connect(
        container_id,
        cols,
        rows,
        on_data=lambda text: _write_stdout(text.encode("utf-8")),
        on_binary=_write_stdout,
        on_close=closed.set,
    )
    try:
        await _run_interactive_loop(session, closed)
    finally:
        await session.close()


async def _run_interactive_loop(session: TerminalSession, closed: asyncio.Event) -> None:
    stdin_fd = sys.stdin.fileno()
    old_settings = termios.tcgetattr(stdin_fd)
    loop = asyncio.get_running_loop()

    try:
        tty.setraw(stdin_fd)

        # SIGWINCH arrives in signal context; hop back onto the loop.
        def on_resize(signum, frame):
            new_cols, new_rows = terminal_size()
            loop.call_soon_threadsafe(
                lambda: asyncio.ensure_future(session.resize(new_cols, new_rows))
            )

        signal.signal(signal.SIGWINCH, on_resize)

        stdin_task = asyncio.create_task(_forward_stdin(session, closed, loop))
        closed_task = asyncio.create_task(closed.wait())
        done, pending = await asyncio.wait(
            [stdin_task, closed_task],
            return_when=asyncio.FIRST_COMPLETED,
        )
        for task in pending:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
    finally:
        termios.tcsetattr(stdin_fd, termios.TCSADRAIN, old_settings)
        signal.signal(signal.SIGWINCH, signal.SIG_DFL)
        print("\n\rSession ended.", file=sys.stderr)


async def _forward_stdin(
    session: TerminalSession, closed: asyncio.Event, loop: asyncio.AbstractEventLoop
) -> None:
    """Forward local stdin to the session using add_reader rather than polling."""
    stdin_fd = sys.stdin.fileno()
    data_ready = asyncio.Event()
    # Keystrokes go out as text frames; keep multi-byte sequences split across reads intact.
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    loop.add_reader(stdin_fd, data_ready.set)
    try:
        while not closed.is_set():
            await data_ready.wait()
            data_ready.clear()
            try:
                data = os.read(stdin_fd, 4096)
            except OSError:
                break
            if not data:
                # EOF on stdin
                break
            text = decoder.decode(data)
            if text:
                await session.write(text)
    finally:
        loop.remove_reader(stdin_fd)


__all__ = ["run_shell", "terminal_size"]
