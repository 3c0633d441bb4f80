"""Tests for container creation (streaming and fallback strategies)."""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator

import httpx
import pytest
import respx

from rexec.containers import AsyncAPIClient, Container, ContainerStore, CreateStrategy, ProgressEvent
from rexec.containers.orchestrator import (
    CREATE_FAILED_MESSAGE,
    STREAM_ENDED_MESSAGE,
    STREAM_ERROR_MESSAGE,
    CreationOrchestrator,
)
from rexec.errors import CreationInProgressError, StreamError

BASE_URL = "https://rexec.test"

FIRST = 'data: {"stage":"a","progress":10}\n\n'
SECOND = 'data: {"stage":"b","progress":100,"complete":true,"container_id":"c1"}\n\n'


def frame(**event: object) -> str:
    return f"data: {json.dumps(event)}\n\n"


class ScriptedStreamClient(AsyncAPIClient):
    """API client whose progress stream replays fixed chunks."""

    def __init__(self, chunks: list[str], *, error: Exception | None = None) -> None:
        super().__init__(token="test_token", base_url=BASE_URL)
        self.chunks = chunks
        self.error = error
        self.requests: list[dict] = []
        self.store: ContainerStore | None = None
        self.creating_seen: list[bool] = []
        self.closed = False

    async def stream_create_container(
        self, *, name: str, image: str, custom_image: str | None = None
    ) -> AsyncGenerator[str, None]:
        self.requests.append({"name": name, "image": image, "custom_image": custom_image})
        try:
            for chunk in self.chunks:
                if self.store is not None:
                    self.creating_seen.append(self.store.is_creating)
                yield chunk
            if self.error is not None:
                raise self.error
        finally:
            self.closed = True


class Recorder:
    def __init__(self) -> None:
        self.progress: list[ProgressEvent] = []
        self.completed: list[Container] = []
        self.errors: list[str] = []

    def kwargs(self) -> dict:
        return {
            "on_progress": self.progress.append,
            "on_complete": self.completed.append,
            "on_error": self.errors.append,
        }


def _streaming_store(client: AsyncAPIClient) -> ContainerStore:
    store = ContainerStore(client, strategy=CreateStrategy.STREAMING)
    if isinstance(client, ScriptedStreamClient):
        client.store = store
    return store


class TestStrategySelection:
    def test_default_is_streaming(self) -> None:
        assert CreateStrategy.resolve() is CreateStrategy.STREAMING

    def test_env_selects_fallback(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REXEC_CREATE_STRATEGY", "Fallback")

        assert CreateStrategy.resolve() is CreateStrategy.FALLBACK

    def test_unknown_strategy(self) -> None:
        with pytest.raises(ValueError, match="Unknown creation strategy"):
            CreateStrategy.resolve("carrier-pigeon")


class TestStreaming:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("offset", [0, 5, len(FIRST) - 1, len(FIRST), len(FIRST) + 17])
    async def test_split_chunks_complete_exactly_once(self, offset: int) -> None:
        stream = FIRST + SECOND
        client = ScriptedStreamClient([stream[:offset], stream[offset:]])
        store = _streaming_store(client)
        rec = Recorder()

        container = await store.create("dev", "ubuntu", **rec.kwargs())

        assert [e.stage for e in rec.progress] == ["a", "b"]
        assert [c.id for c in rec.completed] == ["c1"]
        assert rec.errors == []
        assert container is not None and container.id == "c1"
        assert container.status == "running"
        assert store.containers[0].id == "c1"
        assert store.creating is None

    @pytest.mark.asyncio
    async def test_creating_slot_tracks_progress(self) -> None:
        client = ScriptedStreamClient([frame(stage="pulling", message="Pulling", progress=42.6)])
        store = _streaming_store(client)
        snapshots = []
        store.subscribe(lambda state: snapshots.append(state.creating))

        await store.create("dev", "ubuntu")

        progress = [s for s in snapshots if s is not None]
        assert progress[0].stage == "initializing"
        assert progress[-1].stage == "pulling"
        assert progress[-1].progress == 43
        assert progress[-1].message == "Pulling"
        assert client.creating_seen == [True]
        assert store.creating is None

    @pytest.mark.asyncio
    async def test_new_container_goes_to_front(self) -> None:
        client = ScriptedStreamClient([SECOND])
        store = _streaming_store(client)
        store.complete_creation(Container(id="old", name="old", image="alpine"))

        await store.create("dev", "ubuntu")

        assert [c.id for c in store.containers] == ["c1", "old"]

    @pytest.mark.asyncio
    async def test_duplicate_terminal_events_are_suppressed(self) -> None:
        client = ScriptedStreamClient(
            [
                SECOND,
                frame(stage="late", progress=100, complete=True, container_id="c2"),
                frame(stage="oops", error="late failure"),
            ]
        )
        store = _streaming_store(client)
        rec = Recorder()

        await store.create("dev", "ubuntu", **rec.kwargs())

        assert [c.id for c in rec.completed] == ["c1"]
        assert rec.errors == []
        assert [e.stage for e in rec.progress] == ["b"]
        assert [c.id for c in store.containers] == ["c1"]

    @pytest.mark.asyncio
    async def test_invalid_json_frame_is_skipped(self) -> None:
        client = ScriptedStreamClient([FIRST, "data: {oops\n\n", SECOND])
        store = _streaming_store(client)
        rec = Recorder()

        await store.create("dev", "ubuntu", **rec.kwargs())

        assert [e.stage for e in rec.progress] == ["a", "b"]
        assert len(rec.completed) == 1

    @pytest.mark.asyncio
    async def test_loosely_typed_complete_frame_is_accepted(self) -> None:
        client = ScriptedStreamClient(
            [
                'data: {"stage":"a","message":null,"progress":null}\n\n',
                'data: {"stage":"ready","progress":100,"complete":true,"container_id":42}\n\n',
            ]
        )
        store = _streaming_store(client)
        rec = Recorder()

        await store.create("dev", "ubuntu", **rec.kwargs())

        assert rec.progress[0].message == ""
        assert rec.progress[0].progress == 0
        assert [c.id for c in rec.completed] == ["42"]
        assert rec.errors == []

    @pytest.mark.asyncio
    async def test_error_event_fails_creation(self) -> None:
        client = ScriptedStreamClient(
            [FIRST, frame(stage="error", progress=10, error="image not found")]
        )
        store = _streaming_store(client)
        rec = Recorder()

        container = await store.create("dev", "ubuntu", **rec.kwargs())

        assert container is None
        assert rec.errors == ["image not found"]
        assert rec.completed == []
        assert store.creating is None
        assert store.error == "image not found"
        assert store.containers == ()

    @pytest.mark.asyncio
    async def test_stream_drop_before_completion(self) -> None:
        client = ScriptedStreamClient([FIRST], error=StreamError("connection reset"))
        store = _streaming_store(client)
        rec = Recorder()

        await store.create("dev", "ubuntu", **rec.kwargs())

        assert rec.errors == [STREAM_ERROR_MESSAGE]
        assert store.creating is None

    @pytest.mark.asyncio
    async def test_stream_drop_after_completion_is_ignored(self) -> None:
        client = ScriptedStreamClient([SECOND], error=StreamError("connection reset"))
        store = _streaming_store(client)
        rec = Recorder()

        await store.create("dev", "ubuntu", **rec.kwargs())

        assert len(rec.completed) == 1
        assert rec.errors == []

    @pytest.mark.asyncio
    async def test_trailing_frame_without_delimiter_is_parsed(self) -> None:
        client = ScriptedStreamClient([FIRST, SECOND.rstrip("\n")])
        store = _streaming_store(client)
        rec = Recorder()

        await store.create("dev", "ubuntu", **rec.kwargs())

        assert [c.id for c in rec.completed] == ["c1"]

    @pytest.mark.asyncio
    async def test_stream_ending_without_terminal_event(self) -> None:
        client = ScriptedStreamClient([FIRST])
        store = _streaming_store(client)
        rec = Recorder()

        await store.create("dev", "ubuntu", **rec.kwargs())

        assert rec.errors == [STREAM_ENDED_MESSAGE]
        assert store.creating is None

    @pytest.mark.asyncio
    async def test_custom_image_only_with_custom_selector(self) -> None:
        client = ScriptedStreamClient([SECOND])
        store = _streaming_store(client)

        await store.create("dev", "custom", "ghcr.io/me/img:1")

        assert client.requests == [
            {"name": "dev", "image": "custom", "custom_image": "ghcr.io/me/img:1"}
        ]

    @pytest.mark.asyncio
    async def test_second_creation_while_in_flight_is_rejected(self) -> None:
        client = ScriptedStreamClient([SECOND])
        store = _streaming_store(client)
        store.begin_creation("first", "ubuntu")

        with pytest.raises(CreationInProgressError):
            await store.create("second", "ubuntu")

        assert client.requests == []

    @pytest.mark.asyncio
    async def test_callback_exception_still_clears_slot(self) -> None:
        client = ScriptedStreamClient([FIRST, SECOND])
        store = _streaming_store(client)

        def explode(event: ProgressEvent) -> None:
            raise RuntimeError("ui crashed")

        with pytest.raises(RuntimeError):
            await store.create("dev", "ubuntu", on_progress=explode)

        assert store.creating is None
        assert client.closed

    @pytest.mark.asyncio
    async def test_missing_token_fails_fast(self) -> None:
        store = ContainerStore(AsyncAPIClient(base_url=BASE_URL), strategy="streaming")
        states = []
        store.subscribe(states.append)
        rec = Recorder()

        with respx.mock(base_url=BASE_URL, assert_all_called=False) as mock:
            route = mock.post("/api/containers/stream")
            container = await store.create("dev", "ubuntu", **rec.kwargs())

        assert container is None
        assert len(rec.errors) == 1
        assert "Not authenticated" in rec.errors[0]
        assert not route.called
        assert len(states) == 1

    @pytest.mark.asyncio
    async def test_http_stream_end_to_end(self, mock_token: str) -> None:
        store = ContainerStore(AsyncAPIClient(token=mock_token, base_url=BASE_URL))
        rec = Recorder()

        with respx.mock(base_url=BASE_URL) as mock:
            route = mock.post("/api/containers/stream").mock(
                return_value=httpx.Response(
                    200,
                    content=(FIRST + SECOND).encode(),
                    headers={"content-type": "text/event-stream"},
                )
            )
            await store.create("dev", "ubuntu", **rec.kwargs())

        request = route.calls[0].request
        assert request.headers["authorization"] == f"Bearer {mock_token}"
        assert request.headers["accept"] == "text/event-stream"
        assert json.loads(request.content) == {"name": "dev", "image": "ubuntu"}
        assert [c.id for c in rec.completed] == ["c1"]

    @pytest.mark.asyncio
    async def test_http_stream_rejected(self, mock_token: str) -> None:
        store = ContainerStore(AsyncAPIClient(token=mock_token, base_url=BASE_URL))
        rec = Recorder()

        with respx.mock(base_url=BASE_URL) as mock:
            mock.post("/api/containers/stream").mock(
                return_value=httpx.Response(403, json={"error": "container limit reached"})
            )
            await store.create("dev", "ubuntu", **rec.kwargs())

        assert rec.errors == ["container limit reached"]
        assert store.creating is None


class TestFallback:
    @pytest.mark.asyncio
    async def test_fallback_publishes_running_container(self, mock_token: str) -> None:
        store = ContainerStore(
            AsyncAPIClient(token=mock_token, base_url=BASE_URL), strategy=CreateStrategy.FALLBACK
        )
        rec = Recorder()

        with respx.mock(base_url=BASE_URL) as mock:
            mock.post("/api/containers").mock(
                return_value=httpx.Response(
                    201,
                    json={
                        "id": "abc",
                        "name": "dev",
                        "image": "ubuntu",
                        "status": "creating",
                        "created_at": "2026-01-01T00:00:00Z",
                    },
                )
            )
            container = await store.create("dev", "ubuntu", **rec.kwargs())

        assert container is not None
        assert container.status == "running"
        assert [c.id for c in store.containers] == ["abc"]
        assert [e.progress for e in rec.progress] == [10, 100]
        assert rec.progress[-1].complete is True
        assert rec.progress[-1].container_id == "abc"
        assert [c.id for c in rec.completed] == ["abc"]
        assert store.creating is None

    @pytest.mark.asyncio
    async def test_fallback_server_error_message(self, mock_token: str) -> None:
        store = ContainerStore(AsyncAPIClient(token=mock_token, base_url=BASE_URL))
        rec = Recorder()

        with respx.mock(base_url=BASE_URL) as mock:
            mock.post("/api/containers").mock(
                return_value=httpx.Response(400, json={"error": "invalid image"})
            )
            container = await store.create("dev", "ubuntu", strategy="fallback", **rec.kwargs())

        assert container is None
        assert rec.errors == ["invalid image"]
        assert rec.completed == []
        assert store.creating is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, json={}),
            httpx.Response(200, json=[]),
            httpx.Response(200, json={"name": "dev"}),
            httpx.Response(201, content=b""),
            httpx.Response(200, json={"id": "abc", "idle_seconds": "lots"}),
        ],
    )
    async def test_fallback_unusable_success_body(
        self, mock_token: str, response: httpx.Response
    ) -> None:
        store = ContainerStore(AsyncAPIClient(token=mock_token, base_url=BASE_URL))
        rec = Recorder()

        with respx.mock(base_url=BASE_URL) as mock:
            mock.post("/api/containers").mock(return_value=response)
            container = await store.create("dev", "ubuntu", strategy="fallback", **rec.kwargs())

        assert container is None
        assert rec.errors == [CREATE_FAILED_MESSAGE]
        assert rec.completed == []
        assert store.error == CREATE_FAILED_MESSAGE
        assert store.creating is None
        assert store.containers == ()

    @pytest.mark.asyncio
    async def test_fallback_generic_error_message(self, mock_token: str) -> None:
        store = ContainerStore(AsyncAPIClient(token=mock_token, base_url=BASE_URL))
        rec = Recorder()

        with respx.mock(base_url=BASE_URL) as mock:
            mock.post("/api/containers").mock(return_value=httpx.Response(502, text=""))
            await store.create("dev", "ubuntu", strategy="fallback", **rec.kwargs())

        assert rec.errors == ["Request failed with status 502"]

    @pytest.mark.asyncio
    async def test_orchestrator_standalone(self, mock_token: str) -> None:
        client = AsyncAPIClient(token=mock_token, base_url=BASE_URL)
        store = ContainerStore(client)
        orchestrator = CreationOrchestrator(client, store, strategy="fallback")

        with respx.mock(base_url=BASE_URL) as mock:
            mock.post("/api/containers").mock(
                return_value=httpx.Response(200, json={"id": "x1"})
            )
            container = await orchestrator.create_container("dev", "ubuntu")

        assert container is not None
        assert container.name == "dev"
        assert container.image == "ubuntu"
        assert store.find("x1") is not None
