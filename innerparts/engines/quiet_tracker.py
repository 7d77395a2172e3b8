"""Quiet tracking: which personas have gone silent, and which are returning"""

from datetime import datetime, timedelta
from typing import Callable, List, Optional

from loguru import logger

from innerparts.core.global_config import GlobalConfig
from innerparts.core.models import EntrySummary, Persona
from innerparts.storage.sqlite_store import SQLitePartStore

OBSERVER_MARKER_PREFIX = "quiet_observer_last_entry"

# Assumed gap when the marker entry has scrolled out of the summary cache
ENTRIES_SINCE_NOT_FOUND = 3
ENTRIES_SINCE_EMPTY_CACHE = 1


def observer_marker_key(part_id: str) -> str:
    return f"{OBSERVER_MARKER_PREFIX}:{part_id}"


class QuietTracker:
    """
    Maintains ``last_active_at`` / ``quiet_since`` per persona and the
    quiet-observer's durable "last spoke at entry" marker.
    """

    def __init__(self, store: SQLitePartStore, clock: Callable[[], datetime] = datetime.now) -> None:
        self.store = store
        self.clock = clock
        logger.info("QuietTracker initialized")

    async def update_last_active(self, persona: Persona) -> None:
        """Record that ``persona`` just spoke: stamp activity and clear the quiet marker"""
        now = self.clock()
        persona.last_active_at = now
        persona.quiet_since = None
        try:
            await self.store.update_persona_timestamps(persona.id, now, None)
        except Exception as e:
            logger.error(f"QuietTracker update_last_active error: {e}")

    def get_quiet_parts(self, personas: List[Persona], config: GlobalConfig) -> List[Persona]:
        """Personas inactive longer than ``quietThresholdDays`` (never-active counts as quiet)"""
        if not config.features.part_quiet_return:
            return []
        cutoff = self.clock() - timedelta(days=config.part_intelligence.quiet_threshold_days)
        return [p for p in personas if p.last_active_at is None or p.last_active_at < cutoff]

    def is_quiet(self, persona: Persona, config: GlobalConfig) -> bool:
        return bool(self.get_quiet_parts([persona], config))

    def is_returning(self, persona: Persona) -> bool:
        return persona.quiet_since is not None

    async def mark_quiet(self, persona: Persona) -> None:
        now = self.clock()
        persona.quiet_since = now
        try:
            await self.store.set_quiet_since(persona.id, now)
        except Exception as e:
            logger.error(f"QuietTracker mark_quiet error: {e}")

    async def mark_newly_quiet(self, personas: List[Persona], config: GlobalConfig) -> int:
        """Set ``quiet_since`` on quiet personas that don't carry it yet; returns how many"""
        marked = 0
        for persona in self.get_quiet_parts(personas, config):
            if persona.quiet_since is None:
                await self.mark_quiet(persona)
                marked += 1
        if marked:
            logger.debug(f"Marked {marked} personas as quiet")
        return marked

    # ── Quiet-observer cross-entry cooldown ─────────────────────────────────

    async def get_observer_last_entry(self, part_id: str) -> Optional[str]:
        return await self.store.get_marker(observer_marker_key(part_id))

    async def record_observer_spoke(self, part_id: str, entry_id: str) -> None:
        try:
            await self.store.set_marker(observer_marker_key(part_id), entry_id)
        except Exception as e:
            logger.error(f"QuietTracker record_observer_spoke error: {e}")


def entries_since(
    last_entry_id: Optional[str],
    current_entry_id: str,
    summaries: List[EntrySummary],
) -> Optional[int]:
    """
    Approximate number of entries since the observer last spoke.

    ``summaries`` is the session cache, newest first and capped, so the count
    saturates at ENTRIES_SINCE_NOT_FOUND once the marker falls outside it.

    Returns:
        None when the observer never spoke; 0 for the current entry;
        otherwise the 1-based position of the marker entry in the cache
    """
    if last_entry_id is None:
        return None
    if last_entry_id == current_entry_id:
        return 0
    if not summaries:
        return ENTRIES_SINCE_EMPTY_CACHE
    for index, summary in enumerate(summaries):
        if summary.entry_id == last_entry_id:
            return index + 1
    return ENTRIES_SINCE_NOT_FOUND
