"""Lazy, retrying loader for terminal rendering capabilities.

Rendering an interactive terminal needs a "core" capability set, and can use an
optional "acceleration" set. Both are loaded on demand, at most once per
process. Callers that want to hide the load behind network latency can call
:meth:`ResourceLoader.preload` or :meth:`ResourceLoader.preload_with_retry`
when a container creation starts; the terminal-open path calls
:meth:`ResourceLoader.load_core` and gets the cached result.
"""

from __future__ import annotations

import asyncio
import importlib
import logging
import os
import re
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from types import ModuleType
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

SLOW_EFFECTIVE_TYPES = frozenset({"2g", "slow-2g"})
SLOW_DOWNLINK_MBPS = 1.5
FAST_BASE_DELAY = 0.5
SLOW_BASE_DELAY = 0.3
SLOW_MOBILE_EXTRA_RETRIES = 2
DEFAULT_MAX_RETRIES = 3
PRELOAD_RETRY_DELAY = 1.0

MOBILE_USER_AGENT = re.compile(
    r"Android|webOS|iPhone|iPad|iPod|BlackBerry|IEMobile|Opera Mini", re.IGNORECASE
)

CapabilitySet = dict[str, ModuleType]
Loader = Callable[[], Awaitable[T]]
Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class NetworkHint:
    """Network quality as reported by the host; unknown fields mean "fast"."""

    effective_type: str | None = None
    save_data: bool = False
    downlink_mbps: float | None = None

    @classmethod
    def from_env(cls) -> NetworkHint:
        """Read REXEC_NETWORK_EFFECTIVE_TYPE, REXEC_SAVE_DATA and REXEC_DOWNLINK_MBPS."""
        downlink: float | None
        try:
            downlink = float(os.environ["REXEC_DOWNLINK_MBPS"])
        except (KeyError, ValueError):
            downlink = None
        return cls(
            effective_type=os.getenv("REXEC_NETWORK_EFFECTIVE_TYPE") or None,
            save_data=os.getenv("REXEC_SAVE_DATA", "").lower() in ("1", "true", "yes", "on"),
            downlink_mbps=downlink,
        )

    @property
    def is_slow(self) -> bool:
        if self.effective_type and self.effective_type.lower() in SLOW_EFFECTIVE_TYPES:
            return True
        if self.save_data:
            return True
        # A reported downlink of 0 means "unknown", not "stalled".
        return self.downlink_mbps is not None and 0 < self.downlink_mbps < SLOW_DOWNLINK_MBPS


@dataclass(frozen=True)
class DeviceHint:
    is_mobile: bool = False

    @classmethod
    def from_user_agent(cls, user_agent: str | None) -> DeviceHint:
        return cls(is_mobile=bool(user_agent and MOBILE_USER_AGENT.search(user_agent)))

    @classmethod
    def from_env(cls) -> DeviceHint:
        """Detect a mobile host from REXEC_USER_AGENT or an Android (e.g. Termux) runtime."""
        user_agent = os.getenv("REXEC_USER_AGENT")
        if user_agent:
            return cls.from_user_agent(user_agent)
        return cls(is_mobile="ANDROID_ROOT" in os.environ or "TERMUX_VERSION" in os.environ)


@dataclass(frozen=True)
class LoadingInfo:
    is_mobile: bool
    is_slow_connection: bool
    is_loaded: bool


class LoadState(str, Enum):
    EMPTY = "empty"
    PENDING = "pending"
    RESOLVED = "resolved"


class LoadCache(Generic[T]):
    """Memoizes one asynchronous load.

    ``EMPTY -> PENDING`` on first demand; ``PENDING -> RESOLVED`` permanently on
    success; ``PENDING -> EMPTY`` on failure, before the failure reaches any
    waiter, so a retry issued from an error handler starts a fresh load.
    Concurrent callers share the pending load.
    """

    def __init__(self, load: Loader[T]) -> None:
        self._load = load
        self._pending: asyncio.Future[T] | None = None
        self._value: T | None = None
        self._resolved = False

    @property
    def state(self) -> LoadState:
        if self._resolved:
            return LoadState.RESOLVED
        if self._pending is not None:
            return LoadState.PENDING
        return LoadState.EMPTY

    async def get(self) -> T:
        if self._resolved:
            return self._value  # type: ignore[return-value]
        if self._pending is None or self._pending.cancelled():
            self._pending = asyncio.ensure_future(self._run())
        # Shielded so one waiter's cancellation does not abort the shared load.
        return await asyncio.shield(self._pending)

    async def _run(self) -> T:
        try:
            value = await self._load()
        except BaseException:
            self._pending = None
            raise
        self._value = value
        self._resolved = True
        self._pending = None
        return value


def module_loader(names: Sequence[str]) -> Loader[CapabilitySet]:
    """Build a loader that imports ``names`` and returns them keyed by name."""

    async def load() -> CapabilitySet:
        modules: CapabilitySet = {}
        for name in names:
            modules[name] = importlib.import_module(name)
            # Give other tasks a turn between imports.
            await asyncio.sleep(0)
        return modules

    return load


async def _no_acceleration() -> None:
    return None


class ResourceLoader:
    """Loads the terminal rendering capabilities with network-aware prefetch.

    Args:
        core: Loader for the required capability set.
        acceleration: Loader for the optional acceleration set. Without one,
            :meth:`load_acceleration` resolves to ``None``.
        network: Network quality hint; defaults to :meth:`NetworkHint.from_env`.
        device: Device hint; defaults to :meth:`DeviceHint.from_env`.
        sleep: Backoff timer, replaceable in tests.
    """

    def __init__(
        self,
        core: Loader[object],
        acceleration: Loader[object] | None = None,
        *,
        network: NetworkHint | None = None,
        device: DeviceHint | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._core = LoadCache(core)
        self._acceleration = LoadCache(acceleration or _no_acceleration)
        self.network = network if network is not None else NetworkHint.from_env()
        self.device = device if device is not None else DeviceHint.from_env()
        self._sleep = sleep
        self._background: set[asyncio.Future[object]] = set()

    @classmethod
    def for_modules(
        cls,
        core: Sequence[str],
        acceleration: Sequence[str] = (),
        *,
        network: NetworkHint | None = None,
        device: DeviceHint | None = None,
    ) -> ResourceLoader:
        """Loader whose capabilities are importable Python modules."""
        return cls(
            module_loader(core),
            module_loader(acceleration) if acceleration else None,
            network=network,
            device=device,
        )

    async def load_core(self) -> object:
        """Load (once) and return the core capability set."""
        return await self._core.get()

    async def load_acceleration(self) -> object | None:
        """Load (once) and return the optional acceleration set."""
        return await self._acceleration.get()

    def _spawn(self, load: Callable[[], Awaitable[object]], what: str) -> asyncio.Future[object]:
        """Run ``load`` in the background, logging instead of raising failures."""

        def done(fut: asyncio.Future[object]) -> None:
            self._background.discard(fut)
            if not fut.cancelled() and fut.exception() is not None:
                logger.debug("Preloading %s failed: %s", what, fut.exception())

        fut = asyncio.ensure_future(load())
        self._background.add(fut)
        fut.add_done_callback(done)
        return fut

    def preload(self) -> None:
        """Start loading in the background without waiting. Never raises.

        A failed core load is retried once after PRELOAD_RETRY_DELAY seconds.
        The acceleration set is skipped on slow connections.
        """
        self._spawn(self._preload_core, "core")
        if not self.network.is_slow:
            self._spawn(self.load_acceleration, "acceleration")

    async def _preload_core(self) -> object:
        try:
            return await self.load_core()
        except Exception as exc:
            logger.debug(
                "Preloading core failed, retrying in %.1fs: %s", PRELOAD_RETRY_DELAY, exc
            )
        await self._sleep(PRELOAD_RETRY_DELAY)
        return await self.load_core()

    async def preload_with_retry(self, max_retries: int = DEFAULT_MAX_RETRIES) -> None:
        """Load the core set, retrying with exponential backoff. Never raises.

        Attempt ``n`` is followed by a ``base * 2**(n-1)`` second pause, with
        ``base`` 0.3s on slow connections and 0.5s otherwise. Slow mobile hosts
        get two extra attempts. When every attempt fails the failure is logged
        and the next :meth:`load_core` call (when a terminal actually opens)
        tries again.
        """
        slow = self.network.is_slow
        budget = max_retries
        if slow and self.device.is_mobile:
            budget += SLOW_MOBILE_EXTRA_RETRIES
        base_delay = SLOW_BASE_DELAY if slow else FAST_BASE_DELAY

        attempts = 0
        while True:
            attempts += 1
            try:
                await self.load_core()
            except Exception as exc:
                if attempts < budget:
                    delay = base_delay * 2 ** (attempts - 1)
                    logger.debug(
                        "Loading terminal capabilities failed (attempt %d/%d), retrying in %.1fs",
                        attempts,
                        budget,
                        delay,
                    )
                    await self._sleep(delay)
                    continue
                logger.warning(
                    "Failed to preload terminal capabilities after %d attempts: %s",
                    attempts,
                    exc,
                )
                return
            if not slow:
                self._spawn(self.load_acceleration, "acceleration")
            return

    def is_loaded(self) -> bool:
        """Whether a core load has been started or has finished."""
        return self._core.state is not LoadState.EMPTY

    def get_loading_info(self) -> LoadingInfo:
        return LoadingInfo(
            is_mobile=self.device.is_mobile,
            is_slow_connection=self.network.is_slow,
            is_loaded=self.is_loaded(),
        )


__all__ = [
    "ResourceLoader",
    "LoadCache",
    "LoadState",
    "LoadingInfo",
    "NetworkHint",
    "DeviceHint",
    "module_loader",
    "SLOW_DOWNLINK_MBPS",
    "SLOW_EFFECTIVE_TYPES",
    "PRELOAD_RETRY_DELAY",
]
