"""Integration tests for the part orchestrator over a seeded SQLite store"""

import asyncio
from datetime import timedelta

import pytest

from conftest import NOW, FakeClassifier, ScriptedClient, ZeroRandom, make_config, make_event
from innerparts.core.errors import GenerationError
from innerparts.core.models import EmotionTag, Entry, EntrySummary, UserProfile
from innerparts.orchestration.callbacks import OrchestratorCallbacks
from innerparts.orchestration.orchestrator import PartOrchestrator
from innerparts.orchestration.prompts import GROUNDING_INSTRUCTIONS, seed_personas
from innerparts.storage.sqlite_store import SQLitePartStore

PARTS_ON = {"partsEnabled": True}


class HostRecorder:
    """Records callback traffic the way a UI would receive it"""

    def __init__(self) -> None:
        self.calls = []
        self.tokens = []
        self.errors = []
        self.emotion_seen = asyncio.Event()

    def callbacks(self) -> OrchestratorCallbacks:
        return OrchestratorCallbacks(
            on_thought_start=lambda *args: self.calls.append(("thought_start", args)),
            on_thought_token=self.tokens.append,
            on_thought_complete=lambda t: self.calls.append(("thought_complete", t.part_id)),
            on_emotion_detected=self._emotion,
            on_error=self._error,
            on_echo=lambda echo: self.calls.append(("echo", echo.entry_id)),
            on_silence=lambda *args: self.calls.append(("silence", args)),
            on_disagreement_start=lambda *args: self.calls.append(("disagreement_start", args)),
            on_disagreement_complete=lambda t: self.calls.append(("disagreement_complete", t.part_id)),
        )

    def names(self):
        return [name for name, _ in self.calls]

    def _emotion(self, tag: EmotionTag) -> None:
        self.calls.append(("emotion", tag))
        self.emotion_seen.set()

    def _error(self, error: Exception) -> None:
        self.errors.append(error)


@pytest.fixture
async def seeded_store(store: SQLitePartStore) -> SQLitePartStore:
    await seed_personas(store)
    return store


async def start(store, client, host=None, classifier=None, **features) -> PartOrchestrator:
    sections = {key: value for key, value in features.items() if isinstance(value, dict)}
    sections.setdefault("features", {}).update(PARTS_ON)
    orchestrator = PartOrchestrator(
        store,
        client,
        classifier=classifier,
        callbacks=(host or HostRecorder()).callbacks(),
        config=make_config(**sections),
        rng=ZeroRandom(),
        clock=lambda: NOW,
        disagreement_delay=0.01,
    )
    await orchestrator.start_session("e-now")
    return orchestrator


class TestPauseHandling:
    """Test the pause-to-thought cycle"""

    @pytest.mark.asyncio
    async def test_thought_cycle(self, seeded_store: SQLitePartStore) -> None:
        host = HostRecorder()
        client = ScriptedClient()
        orchestrator = await start(seeded_store, client, host)

        thought = await orchestrator.handle_pause(make_event())

        assert thought.part_id == "still"
        assert thought.entry_id == "e-now"
        assert host.names() == ["thought_start", "thought_complete"]
        assert host.calls[0][1] == ("still", "The Still", "#7A9E7E")
        assert "".join(host.tokens) == thought.content
        assert [t.id for t in await seeded_store.get_thoughts("e-now")] == [thought.id]
        assert list(orchestrator.session.recent_speakers) == ["still"]
        assert not orchestrator.is_generating
        await orchestrator.close()

    @pytest.mark.asyncio
    async def test_recent_speaker_steps_aside(self, seeded_store: SQLitePartStore) -> None:
        orchestrator = await start(seeded_store, ScriptedClient())

        first = await orchestrator.handle_pause(make_event())
        second = await orchestrator.handle_pause(make_event())

        assert first.part_id == "still"
        assert second.part_id != "still"
        await orchestrator.close()

    @pytest.mark.asyncio
    async def test_feature_disabled(self, seeded_store: SQLitePartStore) -> None:
        client = ScriptedClient()
        orchestrator = await start(seeded_store, client)
        orchestrator.update_config(None)

        assert await orchestrator.handle_pause(make_event()) is None
        assert client.calls == []
        await orchestrator.close()

    @pytest.mark.asyncio
    async def test_short_text_ignored(self, seeded_store: SQLitePartStore) -> None:
        client = ScriptedClient()
        orchestrator = await start(seeded_store, client)

        assert await orchestrator.handle_pause(make_event("hm", current_text="   hm ...   ")) is None
        assert client.calls == []
        await orchestrator.close()

    @pytest.mark.asyncio
    async def test_overlapping_pause_is_dropped(self, seeded_store: SQLitePartStore) -> None:
        gate = asyncio.Event()
        client = ScriptedClient(gate=gate)
        orchestrator = await start(seeded_store, client)

        first = asyncio.create_task(orchestrator.handle_pause(make_event()))
        await client.started.wait()
        assert orchestrator.is_generating

        assert await orchestrator.handle_pause(make_event()) is None
        gate.set()

        assert (await first).part_id == "still"
        assert len(client.calls) == 1
        await orchestrator.close()

    @pytest.mark.asyncio
    async def test_simultaneous_pauses_start_one_stream(self, seeded_store: SQLitePartStore) -> None:
        """Both events arrive before either stream starts; only one wins the lock"""
        gate = asyncio.Event()
        client = ScriptedClient(gate=gate)
        orchestrator = await start(seeded_store, client)

        first = asyncio.create_task(orchestrator.handle_pause(make_event()))
        second = asyncio.create_task(orchestrator.handle_pause(make_event()))

        assert await second is None
        await client.started.wait()
        gate.set()

        assert (await first).part_id == "still"
        assert len(client.calls) == 1
        assert not orchestrator.is_generating
        await orchestrator.close()

    @pytest.mark.asyncio
    async def test_cancel_generation(self, seeded_store: SQLitePartStore) -> None:
        client = ScriptedClient(gate=asyncio.Event())
        host = HostRecorder()
        orchestrator = await start(seeded_store, client, host)

        pending = asyncio.create_task(orchestrator.handle_pause(make_event()))
        await client.started.wait()

        assert orchestrator.cancel_generation()
        assert await pending is None
        assert not orchestrator.is_generating
        assert "thought_complete" not in host.names()
        assert await seeded_store.get_thoughts("e-now") == []
        assert not orchestrator.cancel_generation()
        await orchestrator.close()

    @pytest.mark.asyncio
    async def test_generation_error(self, seeded_store: SQLitePartStore) -> None:
        host = HostRecorder()
        client = ScriptedClient(tokens=["Some"], error=TimeoutError("upstream timeout"))
        orchestrator = await start(seeded_store, client, host)

        assert await orchestrator.handle_pause(make_event()) is None
        assert isinstance(host.errors[0], GenerationError)
        assert not orchestrator.is_generating
        assert await seeded_store.get_thoughts("e-now") == []
        await orchestrator.close()

    @pytest.mark.asyncio
    async def test_crisis_language_grounds_and_selects_self(self, seeded_store: SQLitePartStore) -> None:
        client = ScriptedClient()
        orchestrator = await start(seeded_store, client)

        thought = await orchestrator.handle_pause(make_event("I miss her and it hurts, I want to die"))

        assert orchestrator.grounding.active
        assert thought.part_id == "still"
        assert GROUNDING_INSTRUCTIONS in client.calls[0][0]["content"]
        await orchestrator.close()

    @pytest.mark.asyncio
    async def test_crisis_language_in_short_text_grounds(self, seeded_store: SQLitePartStore) -> None:
        client = ScriptedClient()
        orchestrator = await start(seeded_store, client)

        assert await orchestrator.handle_pause(make_event("I want to die.", current_text="I want to die.")) is None

        assert orchestrator.grounding.active
        assert client.calls == []
        await orchestrator.close()

    @pytest.mark.asyncio
    async def test_crisis_language_while_generating_grounds(self, seeded_store: SQLitePartStore) -> None:
        gate = asyncio.Event()
        client = ScriptedClient(gate=gate)
        orchestrator = await start(seeded_store, client)

        first = asyncio.create_task(orchestrator.handle_pause(make_event()))
        await client.started.wait()

        assert await orchestrator.handle_pause(make_event("I want to die")) is None
        assert orchestrator.grounding.active
        gate.set()

        assert (await first) is not None
        assert len(client.calls) == 1
        await orchestrator.close()

    @pytest.mark.asyncio
    async def test_start_session_reloads_memory_cache(self, seeded_store: SQLitePartStore) -> None:
        orchestrator = await start(seeded_store, ScriptedClient())
        assert orchestrator.memory_cache.profile is None

        await seeded_store.save_user_profile(UserProfile(recurring_themes=["work"]))
        await orchestrator.start_session("e-next")

        assert orchestrator.memory_cache.profile.recurring_themes == ["work"]
        await orchestrator.close()


class TestAncillaryOutcomes:
    """Test echo, silence, emotion and disagreement paths"""

    @pytest.mark.asyncio
    async def test_echo_replaces_persona(self, seeded_store: SQLitePartStore) -> None:
        created = NOW - timedelta(days=10)
        await seeded_store.save_entry(Entry(
            id="e-old",
            plain_text="I sat in the garden. My mother was there. We planted roses together. It was quiet.",
            created_at=created,
        ))
        await seeded_store.save_entry_summary(EntrySummary(entry_id="e-old", themes=["garden", "mother"],
                                                           timestamp=created))
        host = HostRecorder()
        client = ScriptedClient()
        orchestrator = await start(seeded_store, client, host, features={"echoes": True})

        result = await orchestrator.handle_pause(make_event("thinking of my mother in the garden"))

        assert result is None
        assert host.calls == [("echo", "e-old")]
        assert client.calls == []
        await orchestrator.close()

    @pytest.mark.asyncio
    async def test_silence_during_flow(self, seeded_store: SQLitePartStore) -> None:
        host = HostRecorder()
        client = ScriptedClient()
        orchestrator = await start(
            seeded_store, client, host,
            features={"silenceAsResponse": True},
            partIntelligence={"silenceChance": 1.0},
        )
        orchestrator.set_flow_seconds(120)

        assert await orchestrator.handle_pause(make_event()) is None

        name, args = host.calls[0]
        assert name == "silence"
        persona = next(p for p in orchestrator.personas if p.id == args[0])
        assert args == (persona.id, persona.name, persona.color, persona.color_light)
        assert client.calls == []
        await orchestrator.close()

    @pytest.mark.asyncio
    async def test_no_silence_before_flow_threshold(self, seeded_store: SQLitePartStore) -> None:
        host = HostRecorder()
        orchestrator = await start(
            seeded_store, ScriptedClient(), host,
            features={"silenceAsResponse": True},
            partIntelligence={"silenceChance": 1.0},
        )
        orchestrator.set_flow_seconds(10)

        assert await orchestrator.handle_pause(make_event()) is not None
        assert "silence" not in host.names()
        await orchestrator.close()

    @pytest.mark.asyncio
    async def test_emotion_detected(self, seeded_store: SQLitePartStore) -> None:
        host = HostRecorder()
        orchestrator = await start(seeded_store, ScriptedClient(), host, classifier=FakeClassifier(emotion="Sad"))

        await orchestrator.handle_pause(make_event())
        await asyncio.wait_for(host.emotion_seen.wait(), timeout=1)

        assert ("emotion", EmotionTag.SAD) in host.calls
        assert orchestrator.session.current_emotion == EmotionTag.SAD
        await orchestrator.close()

    @pytest.mark.asyncio
    async def test_unknown_emotion_ignored(self, seeded_store: SQLitePartStore) -> None:
        host = HostRecorder()
        classifier = FakeClassifier(emotion="melancholy-ish")
        orchestrator = await start(seeded_store, ScriptedClient(), host, classifier=classifier)

        await orchestrator.handle_pause(make_event())
        await asyncio.sleep(0)
        await orchestrator.close()

        assert classifier.calls == 1
        assert "emotion" not in host.names()
        assert orchestrator.session.current_emotion == EmotionTag.NEUTRAL

    @pytest.mark.asyncio
    async def test_disagreement_follows(self, seeded_store: SQLitePartStore) -> None:
        host = HostRecorder()
        client = ScriptedClient()
        orchestrator = await start(
            seeded_store, client, host,
            features={"partsDisagreeing": True},
            partIntelligence={"disagreeChance": 1.0},
        )

        thought = await orchestrator.handle_pause(make_event("I miss her and it hurts"))
        await asyncio.wait_for(orchestrator._disagreement_task, timeout=1)

        assert thought.part_id == "tender"
        start_args = next(args for name, args in host.calls if name == "disagreement_start")
        assert start_args == ("watcher", "The Watcher", "#6B8FA3", "tender")
        assert 'Another part just said: "That still hurts, doesn\'t it."' in client.calls[1][0]["content"]

        stored = await seeded_store.get_thoughts("e-now")
        assert [t.part_id for t in stored] == ["tender", "watcher"]
        assert stored[1].is_disagreement
        assert stored[1].responding_to_part_id == "tender"
        assert orchestrator.disagreement_engine.last_disagreement_at is not None
        await orchestrator.close()

    @pytest.mark.asyncio
    async def test_new_pause_cancels_pending_disagreement(self, seeded_store: SQLitePartStore) -> None:
        host = HostRecorder()
        client = ScriptedClient()
        orchestrator = await start(
            seeded_store, client, host,
            features={"partsDisagreeing": True},
            partIntelligence={"disagreeChance": 1.0},
        )
        orchestrator.disagreement_delay = 60

        await orchestrator.handle_pause(make_event("I miss her and it hurts"))
        pending = orchestrator._disagreement_task
        await orchestrator.handle_pause(make_event())
        await asyncio.sleep(0)

        assert pending.cancelled()
        assert "disagreement_start" not in host.names()
        await orchestrator.close()
