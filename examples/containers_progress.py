#!/usr/bin/env python3
"""Example: Create a container and follow its progress

Lists the caller's containers, creates one while printing each progress
event, then stops and deletes it.

Usage:
    REXEC_TOKEN=... python examples/containers_progress.py [IMAGE]
"""

import asyncio
import sys

from rexec import AsyncRexecClient, ContainersState, ProgressEvent


def show_state(state: ContainersState) -> None:
    if state.creating is not None:
        c = state.creating
        print(f"  creating {c.name}: {c.progress}% ({c.stage})")


def show_progress(event: ProgressEvent) -> None:
    print(f"[{event.progress:5.1f}%] {event.stage}: {event.message}")


async def main(image: str) -> int:
    client = AsyncRexecClient()
    store = client.containers

    await store.fetch()
    print(f"{store.count}/{store.limit} containers")
    for container in store.containers:
        print(f"  {container.id} {container.name} ({container.status})")
    if store.is_at_limit:
        print("Container limit reached; delete one first.")
        return 1

    unsubscribe = store.subscribe(show_state)
    try:
        container = await client.create_container(
            "example", image, on_progress=show_progress
        )
    finally:
        unsubscribe()

    if container is None:
        print(f"Creation failed: {store.error}")
        return 1

    print(f"Created {container.id}")
    await store.stop(container.id)
    print(f"Stopped: {store.find(container.id).status}")
    await store.delete(container.id)
    print("Deleted")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else "ubuntu")))
