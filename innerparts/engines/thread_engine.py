"""Unfinished threads: themes from past entries the writer never came back to"""

from datetime import timedelta
from typing import List, Optional

from innerparts.core.global_config import GlobalConfig
from innerparts.core.models import EntrySummary, ThreadResult
from innerparts.core.text import extract_words
from innerparts.engines.base import SuggestionEngine

UNFINISHED_SIGNALS = [
    "unfinished",
    "began to explore",
    "started writing about",
    "trailed off",
    "didn't finish",
    "cut short",
    "left off",
    "started to say",
    "almost wrote",
    "stopped before",
    "incomplete",
    "hinted at",
    "touched on",
]


class ThreadEngine(SuggestionEngine):
    """
    Two strategies, tried in order:
    1. A recent summary whose key moments or emotional arc say something was
       left unfinished.
    2. An orphaned theme (appears in exactly one summary), ranked by word
       overlap with the current text and then by recency.
    """

    def __init__(self, store, rng=None, **kwargs) -> None:
        super().__init__("ThreadEngine", store, rng, **kwargs)

    async def find_unfinished_thread(
        self,
        current_text: str,
        config: GlobalConfig,
    ) -> Optional[ThreadResult]:
        if not config.features.unfinished_threads:
            return None

        engagement = config.engagement
        if not self._roll(engagement.thread_chance):
            return None

        try:
            summaries = await self.store.list_entry_summaries()
            max_age = timedelta(days=engagement.thread_max_age)
            now = self.clock()
            recent = [s for s in summaries if now - s.timestamp < max_age]
            if len(recent) < 2:
                return None

            result = self._find_unfinished_signals(recent) or self._find_orphan_themes(recent, current_text)
            self._record(result)
            return result
        except Exception as e:
            self._log_failure(e)
            return None

    def _find_unfinished_signals(self, summaries: List[EntrySummary]) -> Optional[ThreadResult]:
        for summary in summaries:
            for moment in summary.key_moments:
                if _has_signal(moment):
                    return ThreadResult(
                        theme=summary.themes[0] if summary.themes else "an unfinished thought",
                        entry_id=summary.entry_id,
                        summary=f"{summary.emotional_arc} - {moment}",
                    )

            if _has_signal(summary.emotional_arc):
                return ThreadResult(
                    theme=summary.themes[0] if summary.themes else "something left unsaid",
                    entry_id=summary.entry_id,
                    summary=summary.emotional_arc,
                )
        return None

    def _find_orphan_themes(
        self,
        summaries: List[EntrySummary],
        current_text: str,
    ) -> Optional[ThreadResult]:
        counts: dict[str, int] = {}
        first_seen: dict[str, EntrySummary] = {}
        for summary in summaries:
            for theme in summary.themes:
                key = theme.lower()
                counts[key] = counts.get(key, 0) + 1
                first_seen.setdefault(key, summary)

        orphans = [theme for theme, count in counts.items() if count == 1]
        if not orphans:
            return None

        current_words = set(extract_words(current_text))

        def rank(theme: str) -> tuple[int, float]:
            theme_words = [w for w in theme.split() if len(w) > 3]
            relevance = sum(1 for w in theme_words if w in current_words)
            return relevance, first_seen[theme].timestamp.timestamp()

        best = max(orphans, key=rank)
        summary = first_seen[best]
        return ThreadResult(theme=best, entry_id=summary.entry_id, summary=summary.emotional_arc)


def _has_signal(text: str) -> bool:
    lowered = text.lower()
    return any(signal in lowered for signal in UNFINISHED_SIGNALS)
