"""Per-session state: recent speakers, generation lock, emotion, memory cache"""

from collections import deque
from dataclasses import dataclass, field
from typing import Iterator, List, Optional

from loguru import logger

from innerparts.core.config import settings
from innerparts.core.models import EmotionTag, EntrySummary, UserProfile
from innerparts.storage.sqlite_store import SQLitePartStore

MAX_RECENT_SPEAKERS = 3


class RecentSpeakers:
    """Bounded ring of persona ids, most recent first"""

    def __init__(self, capacity: int = MAX_RECENT_SPEAKERS) -> None:
        self._ids: deque[str] = deque(maxlen=capacity)

    def push(self, part_id: str) -> None:
        self._ids.appendleft(part_id)

    def position(self, part_id: str) -> Optional[int]:
        """Index of the most recent occurrence, or None"""
        for index, speaker in enumerate(self._ids):
            if speaker == part_id:
                return index
        return None

    def clear(self) -> None:
        self._ids.clear()

    def __getitem__(self, index: int) -> str:
        return self._ids[index]

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[str]:
        return iter(self._ids)

    def __repr__(self) -> str:
        return f"RecentSpeakers({list(self._ids)})"


@dataclass
class SessionState:
    """Mutable state for one writing session, owned by the orchestrator"""

    entry_id: str = ""
    recent_speakers: RecentSpeakers = field(default_factory=RecentSpeakers)
    is_generating: bool = False
    current_emotion: EmotionTag = EmotionTag.NEUTRAL
    intention: Optional[str] = None
    flow_seconds: float = 0.0

    def reset(self, entry_id: str) -> None:
        self.entry_id = entry_id
        self.recent_speakers.clear()
        self.is_generating = False
        self.current_emotion = EmotionTag.NEUTRAL
        self.intention = None
        self.flow_seconds = 0.0


class SessionMemoryCache:
    """
    Snapshot of the writer profile and recent entry summaries.

    Loaded once per session so pause handling never goes back to storage for
    them. Summaries are newest first and capped.
    """

    def __init__(self, store: SQLitePartStore, limit: int = settings.MEMORY_CACHE_SUMMARIES) -> None:
        self.store = store
        self.limit = limit
        self.profile: Optional[UserProfile] = None
        self.summaries: List[EntrySummary] = []
        self.loaded = False

    async def load(self) -> None:
        try:
            self.profile = await self.store.get_user_profile()
            self.summaries = await self.store.list_entry_summaries(limit=self.limit)
        except Exception as e:
            logger.error(f"Session memory cache load failed: {e}")
            self.profile = None
            self.summaries = []
        self.loaded = True
        logger.debug(
            "Session memory cache loaded: profile={has_profile}, summaries={count}",
            has_profile=self.profile is not None,
            count=len(self.summaries),
        )

    async def ensure_loaded(self) -> None:
        if not self.loaded:
            await self.load()

    def invalidate(self) -> None:
        self.loaded = False
