"""Integration tests for the streaming coordinator against a real SQLite store"""

import asyncio
import json

import pytest

from conftest import NOW, ScriptedClient, make_persona
from innerparts.core.errors import GenerationError
from innerparts.core.models import MemoryType, PartRole
from innerparts.engines.quiet_tracker import QuietTracker
from innerparts.orchestration.annotations import DELIMITER
from innerparts.orchestration.session import SessionState
from innerparts.orchestration.streaming import (
    GenerationRequest,
    GenerationState,
    StreamHooks,
    StreamingCoordinator,
)
from innerparts.storage.sqlite_store import SQLitePartStore


class Recorder:
    """Collects every hook call in order"""

    def __init__(self) -> None:
        self.events = []
        self.tokens = []
        self.errors = []
        self.annotations = []
        self.completed = []

    def hooks(self) -> StreamHooks:
        return StreamHooks(
            on_start=lambda p: self.events.append(("start", p.id)),
            on_token=self.tokens.append,
            on_complete=lambda t: (self.events.append(("complete", t.part_id)), self.completed.append(t)),
            on_error=lambda e: (self.events.append(("error", type(e).__name__)), self.errors.append(e)),
            on_annotations=lambda a, color: (self.events.append(("annotations", color)), self.annotations.append(a)),
        )


async def make_coordinator(store: SQLitePartStore, client: ScriptedClient, observer_id=None):
    session = SessionState()
    session.reset("e1")
    tracker = QuietTracker(store, clock=lambda: NOW)
    return StreamingCoordinator(client, store, tracker, session, observer_id=observer_id), session


class TestStreamingCoordinator:
    """Test one generation cycle end to end"""

    @pytest.mark.asyncio
    async def test_success_persists_and_updates_state(self, store: SQLitePartStore) -> None:
        persona = make_persona("watcher", PartRole.PROTECTOR, quiet_since=NOW)
        await store.upsert_persona(persona)
        coordinator, session = await make_coordinator(store, ScriptedClient(), observer_id="watcher")
        recorder = Recorder()

        thought = await coordinator.run(
            GenerationRequest(persona=persona, messages=[], anchor_text="x" * 70 + "tail", anchor_offset=74),
            recorder.hooks(),
        )

        assert thought.content == "That still hurts, doesn't it."
        assert "".join(recorder.tokens) == thought.content
        assert recorder.events == [("start", "watcher"), ("complete", "watcher")]
        assert len(thought.anchor_text) == 50
        assert thought.anchor_text.endswith("tail")
        assert coordinator.state == GenerationState.IDLE

        assert [t.id for t in await store.get_thoughts("e1")] == [thought.id]
        assert list(session.recent_speakers) == ["watcher"]

        memories = await store.get_memories("watcher")
        assert [m.type for m in memories] == [MemoryType.OBSERVATION]
        assert persona.memories[-1].content == thought.content

        stored = await store.get_persona("watcher")
        assert stored.last_active_at == NOW
        assert stored.quiet_since is None
        assert await coordinator.quiet_tracker.get_observer_last_entry("watcher") == "e1"
        assert coordinator.get_stats()["completed"] == 1

    @pytest.mark.asyncio
    async def test_short_reply_skips_observation_memory(self, store: SQLitePartStore) -> None:
        coordinator, _ = await make_coordinator(store, ScriptedClient(tokens=["Stay."]))

        thought = await coordinator.run(GenerationRequest(persona=make_persona(), messages=[]), Recorder().hooks())

        assert thought.content == "Stay."
        assert await store.get_memories("tender") == []
        assert await coordinator.quiet_tracker.get_observer_last_entry("tender") is None

    @pytest.mark.asyncio
    async def test_annotations_side_channel(self, store: SQLitePartStore) -> None:
        payload = json.dumps({"highlights": ["the garden"], "ghostText": "and then"})
        client = ScriptedClient(tokens=["Back to the garden.", "\n---annot", "ations---\n", payload])
        coordinator, _ = await make_coordinator(store, client)
        recorder = Recorder()
        persona = make_persona(color="#7A9E7E")

        thought = await coordinator.run(
            GenerationRequest(
                persona=persona,
                messages=[],
                writer_text="We sat in the garden.",
                annotations_enabled=True,
            ),
            recorder.hooks(),
        )

        assert thought.content == "Back to the garden."
        assert "".join(recorder.tokens) == "Back to the garden."
        assert DELIMITER not in "".join(recorder.tokens)
        assert recorder.events[-2:] == [("complete", "tender"), ("annotations", "#7A9E7E")]
        assert recorder.annotations[0].highlights == ["the garden"]
        assert recorder.annotations[0].ghost_text == " And then"

    @pytest.mark.asyncio
    async def test_transport_error_persists_nothing(self, store: SQLitePartStore) -> None:
        client = ScriptedClient(tokens=["Half a th"], error=ConnectionError("reset by peer"))
        coordinator, session = await make_coordinator(store, client)
        recorder = Recorder()

        thought = await coordinator.run(GenerationRequest(persona=make_persona(), messages=[]), recorder.hooks())

        assert thought is None
        assert isinstance(recorder.errors[0], GenerationError)
        assert recorder.errors[0].part_id == "tender"
        assert recorder.completed == []
        assert await store.get_thoughts("e1") == []
        assert len(session.recent_speakers) == 0
        assert coordinator.get_stats()["failed"] == 1

    @pytest.mark.asyncio
    async def test_empty_reply(self, store: SQLitePartStore) -> None:
        coordinator, _ = await make_coordinator(store, ScriptedClient(tokens=["  ", "\n"]))
        recorder = Recorder()

        assert await coordinator.run(GenerationRequest(persona=make_persona(), messages=[]), recorder.hooks()) is None
        assert recorder.completed == []
        assert await store.get_thoughts("e1") == []

    @pytest.mark.asyncio
    async def test_cancellation_persists_nothing(self, store: SQLitePartStore) -> None:
        gate = asyncio.Event()
        client = ScriptedClient(gate=gate)
        coordinator, session = await make_coordinator(store, client)
        recorder = Recorder()

        task = asyncio.create_task(
            coordinator.run(GenerationRequest(persona=make_persona(), messages=[]), recorder.hooks())
        )
        await client.started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert coordinator.state == GenerationState.IDLE
        assert recorder.completed == []
        assert recorder.errors == []
        assert await store.get_thoughts("e1") == []
        assert len(session.recent_speakers) == 0
