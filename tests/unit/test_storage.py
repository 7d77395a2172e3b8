"""Unit tests for the SQLite part store"""

from datetime import datetime, timedelta
from pathlib import Path

import pytest

from conftest import make_persona
from innerparts.core.errors import StoreError
from innerparts.core.models import (
    EmotionTag,
    Entry,
    EntrySummary,
    Memory,
    MemoryType,
    PartRole,
    PartThought,
    SessionLog,
    TimeOfDay,
    UserProfile,
)
from innerparts.storage.sqlite_store import SQLitePartStore


class TestSQLitePartStore:
    """Test SQLite part store operations"""

    @pytest.mark.asyncio
    async def test_connect_creates_schema(self, tmp_path: Path) -> None:
        """Database connection creates every table"""
        store = SQLitePartStore(tmp_path / "nested" / "parts.db")

        await store.connect()

        cursor = await store.conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        tables = {row[0] for row in await cursor.fetchall()}
        assert {
            "personas", "memories", "thoughts", "entries",
            "entry_summaries", "user_profile", "session_logs", "markers",
        } <= tables

        await store.close()

    @pytest.mark.asyncio
    async def test_not_connected_raises(self) -> None:
        store = SQLitePartStore(":memory:")
        with pytest.raises(StoreError):
            await store.list_personas()

    @pytest.mark.asyncio
    async def test_persona_round_trip(self, store: SQLitePartStore) -> None:
        """Learned state survives the JSON metadata column"""
        persona = make_persona(
            "weaver",
            PartRole.MANAGER,
            concern="Patterns and recurrence",
            learned_keywords={"mother", "sunday"},
            learned_emotions={EmotionTag.SAD},
            catchphrases=["Here it is again."],
        )

        await store.upsert_persona(persona)
        loaded = await store.get_persona("weaver")

        assert loaded is not None
        assert loaded.role == PartRole.MANAGER
        assert loaded.learned_keywords == {"mother", "sunday"}
        assert loaded.learned_emotions == {EmotionTag.SAD}
        assert loaded.catchphrases == ["Here it is again."]
        assert loaded.last_active_at is None
        assert await store.count_personas() == 1

    @pytest.mark.asyncio
    async def test_update_persona_timestamps(self, store: SQLitePartStore) -> None:
        await store.upsert_persona(make_persona())
        quiet = datetime(2026, 1, 1, 9, 0)
        await store.set_quiet_since("tender", quiet)

        loaded = await store.get_persona("tender")
        assert loaded.quiet_since == quiet

        active = datetime(2026, 1, 5, 9, 0)
        await store.update_persona_timestamps("tender", active, None)

        loaded = await store.get_persona("tender")
        assert loaded.last_active_at == active
        assert loaded.quiet_since is None

    @pytest.mark.asyncio
    async def test_memories_oldest_first(self, store: SQLitePartStore) -> None:
        base = datetime(2026, 2, 1)
        for i, kind in enumerate([MemoryType.REFLECTION, None, MemoryType.OBSERVATION]):
            await store.append_memory(Memory(
                part_id="tender",
                entry_id="e1",
                content=f"memory {i}",
                type=kind,
                timestamp=base + timedelta(hours=i),
            ))
        await store.append_memory(Memory(part_id="spark", entry_id="e1", content="other"))

        memories = await store.get_memories("tender")

        assert [m.content for m in memories] == ["memory 0", "memory 1", "memory 2"]
        assert memories[1].type is None
        assert memories[2].type == MemoryType.OBSERVATION

    @pytest.mark.asyncio
    async def test_thoughts_by_entry(self, store: SQLitePartStore) -> None:
        thought = PartThought(part_id="still", entry_id="e1", content="There is no rush here.",
                              anchor_text="so much to do", anchor_offset=42)
        await store.append_thought(thought)
        await store.append_thought(PartThought(part_id="still", entry_id="e2", content="Elsewhere."))

        thoughts = await store.get_thoughts("e1")

        assert len(thoughts) == 1
        assert thoughts[0].id == thought.id
        assert thoughts[0].anchor_offset == 42
        assert not thoughts[0].is_disagreement

        reply = PartThought(part_id="spark", entry_id="e1", content="Or you could just go.",
                            is_disagreement=True, responding_to_part_id="still")
        await store.append_thought(reply)

        stored = next(t for t in await store.get_thoughts("e1") if t.id == reply.id)
        assert stored.is_disagreement
        assert stored.responding_to_part_id == "still"

    @pytest.mark.asyncio
    async def test_entry_summaries_newest_first(self, store: SQLitePartStore) -> None:
        base = datetime(2026, 2, 1)
        for i in range(4):
            await store.save_entry_summary(EntrySummary(
                entry_id=f"e{i}",
                themes=[f"theme {i}"],
                timestamp=base + timedelta(days=i),
            ))

        summaries = await store.list_entry_summaries(limit=3)

        assert [s.entry_id for s in summaries] == ["e3", "e2", "e1"]
        assert summaries[0].themes == ["theme 3"]

    @pytest.mark.asyncio
    async def test_entry_and_profile(self, store: SQLitePartStore) -> None:
        entry = Entry(id="e1", plain_text="A whole entry.")
        await store.save_entry(entry)
        assert (await store.get_entry("e1")).plain_text == "A whole entry."
        assert await store.get_entry("missing") is None

        assert await store.get_user_profile() is None
        await store.save_user_profile(UserProfile(avoidance_patterns=["skips past her father"]))
        profile = await store.get_user_profile()
        assert profile.avoidance_patterns == ["skips past her father"]

    @pytest.mark.asyncio
    async def test_session_logs_since(self, store: SQLitePartStore) -> None:
        old = SessionLog(started_at=datetime(2026, 1, 1, 9), word_count=100,
                         time_of_day=TimeOfDay.MORNING, day_of_week=4)
        new = SessionLog(started_at=datetime(2026, 3, 1, 21), word_count=300,
                         time_of_day=TimeOfDay.NIGHT, day_of_week=0)
        await store.append_session_log(old)
        await store.append_session_log(new)

        assert await store.count_session_logs() == 2
        recent = await store.list_session_logs(since=datetime(2026, 2, 1))
        assert [log.id for log in recent] == [new.id]
        assert recent[0].time_of_day == TimeOfDay.NIGHT

    @pytest.mark.asyncio
    async def test_markers(self, store: SQLitePartStore) -> None:
        assert await store.get_marker("k") is None
        await store.set_marker("k", "e1")
        await store.set_marker("k", "e2")
        assert await store.get_marker("k") == "e2"
