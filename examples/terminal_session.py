#!/usr/bin/env python3
"""Example: Run a command in a container terminal

Opens a terminal session without taking over the local terminal, sends one
command and prints whatever comes back for a few seconds.

Usage:
    REXEC_TOKEN=... python examples/terminal_session.py CONTAINER_ID
"""

import asyncio
import sys

from rexec import AsyncRexecClient


async def main(container_id: str) -> None:
    client = AsyncRexecClient()
    print(f"Loading info: {client.loader.get_loading_info()}")

    session = await client.open_terminal(
        container_id,
        on_data=lambda text: print(text, end="", flush=True),
        on_close=lambda: print("\n[session closed]"),
        on_error=lambda exc: print(f"\n[error: {exc}]"),
    )
    async with session:
        await session.resize(100, 30)
        await session.write("uname -a && uptime\r")
        await asyncio.sleep(3)


if __name__ == "__main__":
    if len(sys.argv) != 2:
        sys.exit(__doc__)
    asyncio.run(main(sys.argv[1]))
