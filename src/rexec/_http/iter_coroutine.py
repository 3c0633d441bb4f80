"""Drive non-suspending coroutines to completion without an event loop."""

from __future__ import annotations

import typing

_T = typing.TypeVar("_T")


def iter_coroutine(coro: typing.Coroutine[None, None, _T]) -> _T:
    """Run ``coro`` synchronously and return its result.

    The sync API client shares its request logic with the async one by writing
    it as coroutines that never await real I/O (``BlockingTransport.send`` is
    declared ``async`` but blocks). Such a coroutine finishes on the first
    ``send(None)``.

    Raises:
        RuntimeError: If the coroutine suspends instead of finishing.
    """
    try:
        coro.send(None)
    except StopIteration as ex:
        return ex.value  # type: ignore [no-any-return]
    else:
        raise RuntimeError(f"coroutine {coro!r} suspended; it cannot run without an event loop")
    finally:
        coro.close()


__all__ = ["iter_coroutine"]
