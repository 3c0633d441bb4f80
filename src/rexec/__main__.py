"""Command line interface: ``python -m rexec <command>``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from .client import AsyncRexecClient
from .containers import Container, CreateStrategy, ProgressEvent
from .errors import RexecError


def _print_container(container: Container) -> None:
    print(f"{container.id}\t{container.name}\t{container.image}\t{container.status}")


async def _list(client: AsyncRexecClient, args: argparse.Namespace) -> int:
    containers = await client.containers.fetch()
    for container in containers:
        _print_container(container)
    print(f"{client.containers.count}/{client.containers.limit} containers", file=sys.stderr)
    return 0


async def _create(client: AsyncRexecClient, args: argparse.Namespace) -> int:
    def on_progress(event: ProgressEvent) -> None:
        print(f"[{int(event.progress):3d}%] {event.stage}: {event.message}", file=sys.stderr)

    def on_error(message: str) -> None:
        print(f"Error: {message}", file=sys.stderr)

    container = await client.create_container(
        args.name,
        args.image,
        args.custom_image,
        on_progress=on_progress,
        on_error=on_error,
        strategy=args.strategy,
    )
    if container is None:
        return 1
    _print_container(container)
    return 0


async def _start(client: AsyncRexecClient, args: argparse.Namespace) -> int:
    result = await client.api.start_container(container_id=args.id)
    if result.recreated and result.id and result.id != args.id:
        print(f"Container was recreated as {result.id}", file=sys.stderr)
        print(result.id)
    else:
        print(args.id)
    return 0


async def _stop(client: AsyncRexecClient, args: argparse.Namespace) -> int:
    await client.api.stop_container(container_id=args.id)
    return 0


async def _delete(client: AsyncRexecClient, args: argparse.Namespace) -> int:
    await client.api.delete_container(container_id=args.id)
    return 0


async def _shell(client: AsyncRexecClient, args: argparse.Namespace) -> int:
    await client.loader.preload_with_retry()
    try:
        capabilities = await client.loader.load_core()
    except ImportError as exc:
        print(f"Interactive shell is unavailable on this platform: {exc}", file=sys.stderr)
        return 1
    shell = capabilities["rexec.terminal.shell"]  # type: ignore[index]
    await shell.run_shell(client.terminal, args.id)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rexec", description="Manage Rexec terminal containers.")
    parser.add_argument("--token", help="API token (default: $REXEC_TOKEN)")
    parser.add_argument("--base-url", help="Backend URL (default: $REXEC_BASE_URL)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List containers").set_defaults(handler=_list)

    create = sub.add_parser("create", help="Create a container")
    create.add_argument("name")
    create.add_argument("image")
    create.add_argument("--custom-image", help="Image reference when IMAGE is 'custom'")
    create.add_argument(
        "--strategy",
        choices=[s.value for s in CreateStrategy],
        help="Creation strategy (default: $REXEC_CREATE_STRATEGY or streaming)",
    )
    create.set_defaults(handler=_create)

    for name, handler, help_text in (
        ("start", _start, "Start a container"),
        ("stop", _stop, "Stop a container"),
        ("delete", _delete, "Delete a container"),
        ("shell", _shell, "Attach an interactive shell"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("id")
        cmd.set_defaults(handler=handler)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    client = AsyncRexecClient(token=args.token, base_url=args.base_url)
    try:
        return asyncio.run(args.handler(client, args))
    except RexecError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
