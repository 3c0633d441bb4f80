"""Tests for AsyncRexecClient wiring of loader, store and terminal."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import httpx
import pytest
import respx
import websockets
from websockets import State

from rexec import AsyncRexecClient, ResourceLoader, TerminalConnectionError
from rexec.terminal.loader import DeviceHint, NetworkHint

BASE_URL = "https://rexec.test"


class StubWebSocket:
    def __init__(self) -> None:
        self.state = State.OPEN
        self.closed = False
        self._never = asyncio.Event()

    async def recv(self) -> str:
        await self._never.wait()
        raise websockets.ConnectionClosedOK(None, None)

    async def send(self, data: str | bytes) -> None:
        pass

    async def close(self) -> None:
        self.closed = True
        self.state = State.CLOSED
        self._never.set()


def make_loader(core) -> ResourceLoader:
    return ResourceLoader(core, network=NetworkHint(), device=DeviceHint())


@pytest.fixture
def client(mock_token: str):
    loaded: list[str] = []

    async def core() -> str:
        loaded.append("core")
        return "core"

    c = AsyncRexecClient(token=mock_token, base_url=BASE_URL, loader=make_loader(core))
    c.loaded = loaded  # type: ignore[attr-defined]
    return c


class TestOpenTerminal:
    @pytest.mark.asyncio
    async def test_loads_core_and_connects(self, client) -> None:
        ws = StubWebSocket()

        with patch("rexec.terminal.session.websockets.connect", AsyncMock(return_value=ws)) as connect:
            session = await client.open_terminal("c1", 120, 40)

        assert client.loaded == ["core"]
        assert client.loader.is_loaded()
        assert connect.call_args.args[0] == "wss://rexec.test/ws/terminal/c1?cols=120&rows=40"
        assert session.is_open
        await session.close()
        assert ws.closed

    @pytest.mark.asyncio
    async def test_load_failure_closes_opened_session(self, mock_token: str) -> None:
        async def broken() -> None:
            await asyncio.sleep(0.01)
            raise ImportError("no renderer")

        client = AsyncRexecClient(token=mock_token, base_url=BASE_URL, loader=make_loader(broken))
        ws = StubWebSocket()

        with patch("rexec.terminal.session.websockets.connect", AsyncMock(return_value=ws)):
            with pytest.raises(ImportError, match="no renderer"):
                await client.open_terminal("c1")

        assert ws.closed
        assert not client.loader.is_loaded()

    @pytest.mark.asyncio
    async def test_connect_failure_propagates(self, client) -> None:
        failing = AsyncMock(side_effect=OSError("unreachable"))

        with patch("rexec.terminal.session.websockets.connect", failing):
            with pytest.raises(TerminalConnectionError, match="unreachable"):
                await client.open_terminal("c1")


class TestCreateContainer:
    @pytest.mark.asyncio
    async def test_preloads_while_creating(self, client) -> None:
        with respx.mock(base_url=BASE_URL) as mock:
            mock.post("/api/containers").mock(
                return_value=httpx.Response(200, json={"id": "c9"})
            )
            container = await client.create_container("dev", "ubuntu", strategy="fallback")
            await asyncio.sleep(0)

        assert container is not None
        assert container.id == "c9"
        assert client.loaded == ["core"]
        assert client.containers.find("c9") is not None
