"""Quotes: let a persona quote the writer's own past words back to them"""

from datetime import timedelta
from typing import Optional

from innerparts.core.global_config import GlobalConfig
from innerparts.core.models import QuoteResult
from innerparts.core.text import bounded_passage, split_sentences
from innerparts.engines.base import SuggestionEngine
from innerparts.engines.echo_engine import best_overlap

QUOTE_CANDIDATES = 5


class QuoteEngine(SuggestionEngine):
    """Picks a passage from one of the five most recent entries old enough to quote"""

    def __init__(self, store, rng=None, **kwargs) -> None:
        super().__init__("QuoteEngine", store, rng, **kwargs)

    async def find_quote(self, current_text: str, config: GlobalConfig) -> Optional[QuoteResult]:
        if not config.features.parts_quoting:
            return None

        intelligence = config.part_intelligence
        if not self._roll(intelligence.quote_chance):
            return None

        try:
            summaries = await self.store.list_entry_summaries()
            cutoff = self.clock() - timedelta(days=intelligence.quote_min_age)
            qualifying = [s for s in summaries if s.timestamp < cutoff]
            if not qualifying:
                return None

            best = best_overlap(current_text, qualifying[:QUOTE_CANDIDATES])
            if not best:
                return None

            entry = await self.store.get_entry(best.entry_id)
            if not entry or not entry.plain_text:
                return None

            passage = self._extract_passage(entry.plain_text)
            if not passage:
                return None

            result = QuoteResult(text=passage, entry_id=entry.id)
            self._record(result)
            return result
        except Exception as e:
            self._log_failure(e)
            return None

    def _extract_passage(self, text: str) -> Optional[str]:
        # The middle of an entry is usually its richest part
        sentences = split_sentences(text)
        if not sentences:
            return None
        start = max(0, len(sentences) // 2 - 1)
        return bounded_passage(sentences, start)
