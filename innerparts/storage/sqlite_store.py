"""SQLite-backed store for personas, memories, thoughts, and entry history"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Union

import aiosqlite
from loguru import logger

from innerparts.core.config import settings
from innerparts.core.errors import StoreError
from innerparts.core.models import (
    EmotionTag,
    Entry,
    EntrySummary,
    Memory,
    MemoryType,
    PartRole,
    PartThought,
    Persona,
    SessionLog,
    TimeOfDay,
    UserProfile,
)


def _ts(value: Optional[datetime]) -> Optional[float]:
    return value.timestamp() if value else None


def _dt(value: Optional[float]) -> Optional[datetime]:
    return datetime.fromtimestamp(value) if value is not None else None


class SQLitePartStore:
    """
    Persona/memory/entry store on SQLite.

    Covers everything the orchestration engine reads and writes:
    - personas with learned state kept as a JSON column
    - append-only memories and thoughts
    - entries, entry summaries, the writer profile
    - session logs for ritual detection
    - durable string markers (quiet-observer cross-entry cooldown)
    """

    def __init__(self, db_path: Union[Path, str] = settings.DB_PATH) -> None:
        self.db_path = Path(db_path)
        self._conn: Optional[aiosqlite.Connection] = None

    async def connect(self) -> None:
        """Establish database connection"""
        if str(self.db_path) != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = await aiosqlite.connect(str(self.db_path))
        self._conn.row_factory = aiosqlite.Row

        await self._setup_schema()
        logger.info(f"Connected to database: {self.db_path}")

    async def close(self) -> None:
        """Close database connection"""
        if self._conn:
            await self._conn.close()
            self._conn = None
            logger.info("Database connection closed")

    @property
    def conn(self) -> aiosqlite.Connection:
        if not self._conn:
            raise StoreError("Database not connected")
        return self._conn

    async def _setup_schema(self) -> None:
        """Create tables and indexes"""
        await self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS personas (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                color TEXT NOT NULL,
                role TEXT NOT NULL,
                -- static definition and learned state as JSON
                metadata TEXT NOT NULL,
                last_active_at REAL,
                quiet_since REAL,
                created_at REAL NOT NULL
            );

            CREATE TABLE IF NOT EXISTS memories (
                id TEXT PRIMARY KEY,
                part_id TEXT NOT NULL,
                entry_id TEXT NOT NULL,
                content TEXT NOT NULL,
                type TEXT,
                timestamp REAL NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_memories_part ON memories(part_id, timestamp);

            CREATE TABLE IF NOT EXISTS thoughts (
                id TEXT PRIMARY KEY,
                part_id TEXT NOT NULL,
                entry_id TEXT NOT NULL,
                content TEXT NOT NULL,
                anchor_text TEXT NOT NULL,
                anchor_offset INTEGER NOT NULL,
                timestamp REAL NOT NULL,
                is_disagreement INTEGER NOT NULL DEFAULT 0,
                responding_to_part_id TEXT
            );
            CREATE INDEX IF NOT EXISTS idx_thoughts_entry ON thoughts(entry_id, timestamp);

            CREATE TABLE IF NOT EXISTS entries (
                id TEXT PRIMARY KEY,
                plain_text TEXT NOT NULL,
                created_at REAL NOT NULL,
                updated_at REAL NOT NULL
            );

            CREATE TABLE IF NOT EXISTS entry_summaries (
                entry_id TEXT PRIMARY KEY,
                metadata TEXT NOT NULL,
                timestamp REAL NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_summaries_ts ON entry_summaries(timestamp DESC);

            CREATE TABLE IF NOT EXISTS user_profile (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                metadata TEXT NOT NULL,
                updated_at REAL NOT NULL
            );

            CREATE TABLE IF NOT EXISTS session_logs (
                id TEXT PRIMARY KEY,
                started_at REAL NOT NULL,
                word_count INTEGER NOT NULL,
                time_of_day TEXT NOT NULL,
                day_of_week INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS markers (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );
        """)
        await self.conn.commit()
        logger.debug("Database schema initialized")

    # ── Personas ─────────────────────────────────────────────────────────────

    async def upsert_persona(self, persona: Persona) -> None:
        """Insert or replace a persona definition (memories are stored separately)"""
        metadata = {
            "color_light": persona.color_light,
            "voice_description": persona.voice_description,
            "concern": persona.concern,
            "system_prompt": persona.system_prompt,
            "system_prompt_addition": persona.system_prompt_addition,
            "is_seeded": persona.is_seeded,
            "learned_keywords": sorted(persona.learned_keywords),
            "learned_emotions": sorted(e.value for e in persona.learned_emotions),
            "catchphrases": persona.catchphrases,
        }
        await self.conn.execute(
            """
            INSERT OR REPLACE INTO personas
            (id, name, color, role, metadata, last_active_at, quiet_since, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                persona.id,
                persona.name,
                persona.color,
                persona.role.value,
                json.dumps(metadata),
                _ts(persona.last_active_at),
                _ts(persona.quiet_since),
                persona.created_at.timestamp(),
            ),
        )
        await self.conn.commit()
        logger.debug(f"Upserted persona {persona.id} ({persona.role.value})")

    async def list_personas(self) -> list[Persona]:
        """All personas in creation order"""
        cursor = await self.conn.execute("SELECT * FROM personas ORDER BY created_at, id")
        rows = await cursor.fetchall()
        return [self._row_to_persona(row) for row in rows]

    async def get_persona(self, part_id: str) -> Optional[Persona]:
        cursor = await self.conn.execute("SELECT * FROM personas WHERE id = ?", (part_id,))
        row = await cursor.fetchone()
        return self._row_to_persona(row) if row else None

    async def count_personas(self) -> int:
        cursor = await self.conn.execute("SELECT COUNT(*) FROM personas")
        row = await cursor.fetchone()
        return row[0]

    async def update_persona_timestamps(
        self,
        part_id: str,
        last_active_at: Optional[datetime],
        quiet_since: Optional[datetime],
    ) -> None:
        """Overwrite both quiet-tracking timestamps (None clears)"""
        await self.conn.execute(
            "UPDATE personas SET last_active_at = ?, quiet_since = ? WHERE id = ?",
            (_ts(last_active_at), _ts(quiet_since), part_id),
        )
        await self.conn.commit()

    async def set_quiet_since(self, part_id: str, quiet_since: datetime) -> None:
        await self.conn.execute(
            "UPDATE personas SET quiet_since = ? WHERE id = ?",
            (quiet_since.timestamp(), part_id),
        )
        await self.conn.commit()

    # ── Memories ─────────────────────────────────────────────────────────────

    async def append_memory(self, memory: Memory) -> None:
        await self.conn.execute(
            """
            INSERT INTO memories (id, part_id, entry_id, content, type, timestamp)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                memory.id,
                memory.part_id,
                memory.entry_id,
                memory.content,
                memory.type.value if memory.type else None,
                memory.timestamp.timestamp(),
            ),
        )
        await self.conn.commit()
        logger.debug(f"Appended {memory.type.value if memory.type else 'untyped'} memory for {memory.part_id}")

    async def get_memories(self, part_id: str) -> list[Memory]:
        """Memories for one persona, oldest first"""
        cursor = await self.conn.execute(
            "SELECT * FROM memories WHERE part_id = ? ORDER BY timestamp",
            (part_id,),
        )
        rows = await cursor.fetchall()
        return [
            Memory(
                id=row["id"],
                part_id=row["part_id"],
                entry_id=row["entry_id"],
                content=row["content"],
                type=MemoryType(row["type"]) if row["type"] else None,
                timestamp=_dt(row["timestamp"]),
            )
            for row in rows
        ]

    # ── Thoughts ─────────────────────────────────────────────────────────────

    async def append_thought(self, thought: PartThought) -> None:
        await self.conn.execute(
            """
            INSERT INTO thoughts
            (id, part_id, entry_id, content, anchor_text, anchor_offset, timestamp,
             is_disagreement, responding_to_part_id)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                thought.id,
                thought.part_id,
                thought.entry_id,
                thought.content,
                thought.anchor_text,
                thought.anchor_offset,
                thought.timestamp.timestamp(),
                int(thought.is_disagreement),
                thought.responding_to_part_id,
            ),
        )
        await self.conn.commit()
        logger.debug(f"Persisted thought {thought.id} from {thought.part_id}")

    async def get_thoughts(self, entry_id: str) -> list[PartThought]:
        cursor = await self.conn.execute(
            "SELECT * FROM thoughts WHERE entry_id = ? ORDER BY timestamp",
            (entry_id,),
        )
        rows = await cursor.fetchall()
        return [
            PartThought(
                id=row["id"],
                part_id=row["part_id"],
                entry_id=row["entry_id"],
                content=row["content"],
                anchor_text=row["anchor_text"],
                anchor_offset=row["anchor_offset"],
                timestamp=_dt(row["timestamp"]),
                is_disagreement=bool(row["is_disagreement"]),
                responding_to_part_id=row["responding_to_part_id"],
            )
            for row in rows
        ]

    # ── Entries and summaries ────────────────────────────────────────────────

    async def save_entry(self, entry: Entry) -> None:
        await self.conn.execute(
            """
            INSERT OR REPLACE INTO entries (id, plain_text, created_at, updated_at)
            VALUES (?, ?, ?, ?)
            """,
            (entry.id, entry.plain_text, entry.created_at.timestamp(), entry.updated_at.timestamp()),
        )
        await self.conn.commit()

    async def get_entry(self, entry_id: str) -> Optional[Entry]:
        cursor = await self.conn.execute("SELECT * FROM entries WHERE id = ?", (entry_id,))
        row = await cursor.fetchone()
        if not row:
            return None
        return Entry(
            id=row["id"],
            plain_text=row["plain_text"],
            created_at=_dt(row["created_at"]),
            updated_at=_dt(row["updated_at"]),
        )

    async def save_entry_summary(self, summary: EntrySummary) -> None:
        metadata = {
            "themes": summary.themes,
            "emotional_arc": summary.emotional_arc,
            "key_moments": summary.key_moments,
        }
        await self.conn.execute(
            "INSERT OR REPLACE INTO entry_summaries (entry_id, metadata, timestamp) VALUES (?, ?, ?)",
            (summary.entry_id, json.dumps(metadata), summary.timestamp.timestamp()),
        )
        await self.conn.commit()

    async def list_entry_summaries(self, limit: Optional[int] = None) -> list[EntrySummary]:
        """Entry summaries, newest first"""
        query = "SELECT * FROM entry_summaries ORDER BY timestamp DESC"
        params: tuple[Any, ...] = ()
        if limit:
            query += " LIMIT ?"
            params = (limit,)
        cursor = await self.conn.execute(query, params)
        rows = await cursor.fetchall()

        summaries = []
        for row in rows:
            metadata = json.loads(row["metadata"])
            summaries.append(
                EntrySummary(
                    entry_id=row["entry_id"],
                    themes=metadata.get("themes", []),
                    emotional_arc=metadata.get("emotional_arc", ""),
                    key_moments=metadata.get("key_moments", []),
                    timestamp=_dt(row["timestamp"]),
                )
            )
        return summaries

    # ── Profile ──────────────────────────────────────────────────────────────

    async def save_user_profile(self, profile: UserProfile) -> None:
        metadata = profile.model_dump(mode="json", exclude={"updated_at"})
        await self.conn.execute(
            "INSERT OR REPLACE INTO user_profile (id, metadata, updated_at) VALUES (1, ?, ?)",
            (json.dumps(metadata), profile.updated_at.timestamp()),
        )
        await self.conn.commit()

    async def get_user_profile(self) -> Optional[UserProfile]:
        cursor = await self.conn.execute("SELECT * FROM user_profile WHERE id = 1")
        row = await cursor.fetchone()
        if not row:
            return None
        return UserProfile(**json.loads(row["metadata"]), updated_at=_dt(row["updated_at"]))

    # ── Session logs ─────────────────────────────────────────────────────────

    async def append_session_log(self, log: SessionLog) -> None:
        await self.conn.execute(
            """
            INSERT INTO session_logs (id, started_at, word_count, time_of_day, day_of_week)
            VALUES (?, ?, ?, ?, ?)
            """,
            (log.id, log.started_at.timestamp(), log.word_count, log.time_of_day.value, log.day_of_week),
        )
        await self.conn.commit()

    async def list_session_logs(self, since: Optional[datetime] = None) -> list[SessionLog]:
        """Session logs, oldest first, optionally only those started at/after ``since``"""
        if since:
            cursor = await self.conn.execute(
                "SELECT * FROM session_logs WHERE started_at >= ? ORDER BY started_at",
                (since.timestamp(),),
            )
        else:
            cursor = await self.conn.execute("SELECT * FROM session_logs ORDER BY started_at")
        rows = await cursor.fetchall()
        return [
            SessionLog(
                id=row["id"],
                started_at=_dt(row["started_at"]),
                word_count=row["word_count"],
                time_of_day=TimeOfDay(row["time_of_day"]),
                day_of_week=row["day_of_week"],
            )
            for row in rows
        ]

    async def count_session_logs(self) -> int:
        cursor = await self.conn.execute("SELECT COUNT(*) FROM session_logs")
        row = await cursor.fetchone()
        return row[0]

    # ── Markers ──────────────────────────────────────────────────────────────

    async def get_marker(self, key: str) -> Optional[str]:
        cursor = await self.conn.execute("SELECT value FROM markers WHERE key = ?", (key,))
        row = await cursor.fetchone()
        return row["value"] if row else None

    async def set_marker(self, key: str, value: str) -> None:
        await self.conn.execute(
            "INSERT OR REPLACE INTO markers (key, value) VALUES (?, ?)",
            (key, value),
        )
        await self.conn.commit()

    def _row_to_persona(self, row: aiosqlite.Row) -> Persona:
        """Convert database row to Persona"""
        metadata = json.loads(row["metadata"])
        emotions = {EmotionTag.parse(e) for e in metadata.get("learned_emotions", [])}
        return Persona(
            id=row["id"],
            name=row["name"],
            color=row["color"],
            role=PartRole(row["role"]),
            color_light=metadata.get("color_light", ""),
            voice_description=metadata.get("voice_description", ""),
            concern=metadata.get("concern", ""),
            system_prompt=metadata.get("system_prompt", ""),
            system_prompt_addition=metadata.get("system_prompt_addition", ""),
            is_seeded=metadata.get("is_seeded", False),
            learned_keywords=set(metadata.get("learned_keywords", [])),
            learned_emotions={e for e in emotions if e is not None},
            catchphrases=metadata.get("catchphrases", []),
            last_active_at=_dt(row["last_active_at"]),
            quiet_since=_dt(row["quiet_since"]),
            created_at=_dt(row["created_at"]),
        )
