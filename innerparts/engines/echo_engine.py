"""Echoes: surface a fragment of a past entry instead of a persona response"""

from datetime import timedelta
from typing import List, Optional

from innerparts.core.global_config import GlobalConfig
from innerparts.core.models import EchoResult, EntrySummary
from innerparts.core.text import bounded_passage, extract_words, split_sentences, word_overlap
from innerparts.engines.base import SuggestionEngine

ECHO_MIN_AGE_DAYS = 3


class EchoEngine(SuggestionEngine):
    """
    Finds the past entry whose summary overlaps most with what is being
    written now and returns 1-2 sentences from it.

    Candidates must be older than three days and younger than
    ``engagement.echoMaxAge``. At most ``echoMaxPerSession`` echoes per session.
    """

    def __init__(self, store, rng=None, **kwargs) -> None:
        super().__init__("EchoEngine", store, rng, **kwargs)
        self.echoes_this_session = 0

    def reset(self) -> None:
        self.echoes_this_session = 0

    async def find_echo(self, current_text: str, config: GlobalConfig) -> Optional[EchoResult]:
        if not config.features.echoes:
            return None

        engagement = config.engagement
        if self.echoes_this_session >= engagement.echo_max_per_session:
            return None
        if not self._roll(engagement.echo_chance):
            return None

        try:
            summaries = await self.store.list_entry_summaries()
            now = self.clock()
            min_age = timedelta(days=ECHO_MIN_AGE_DAYS)
            max_age = timedelta(days=engagement.echo_max_age)
            qualifying = [s for s in summaries if min_age < now - s.timestamp < max_age]
            if not qualifying:
                return None

            best = best_overlap(current_text, qualifying)
            if not best:
                return None

            entry = await self.store.get_entry(best.entry_id)
            if not entry or not entry.plain_text:
                return None

            fragment = self._extract_fragment(entry.plain_text)
            if not fragment:
                return None

            self.echoes_this_session += 1
            result = EchoResult(text=fragment, entry_id=entry.id, date=entry.created_at)
            self._record(result)
            return result
        except Exception as e:
            self._log_failure(e)
            return None

    def _extract_fragment(self, text: str) -> Optional[str]:
        """1-2 sentences starting 40% of the way in, where writing tends to deepen"""
        sentences = split_sentences(text)
        if not sentences:
            return None
        start = min(int(len(sentences) * 0.4), len(sentences) - 1)
        return bounded_passage(sentences, start)


def best_overlap(current_text: str, summaries: List[EntrySummary]) -> Optional[EntrySummary]:
    """Summary whose themes and key moments share the most words with ``current_text``.

    Ties keep the earlier (newer) summary; zero overlap yields None.
    """
    current_words = extract_words(current_text)
    best_score = 0
    best: Optional[EntrySummary] = None

    for summary in summaries:
        summary_words = {
            word
            for phrase in [*summary.themes, *summary.key_moments]
            for word in extract_words(phrase)
        }
        overlap = word_overlap(current_words, summary_words)
        if overlap > best_score:
            best_score = overlap
            best = summary

    return best
