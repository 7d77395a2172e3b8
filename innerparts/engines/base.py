"""Base class for the probability-gated suggestion engines"""

import random
from datetime import datetime
from typing import Callable, Dict, Optional

from loguru import logger

from innerparts.storage.sqlite_store import SQLitePartStore


class SuggestionEngine:
    """
    Shared shape of the ancillary engines.

    Each engine is gated by a feature flag and a probability roll from the
    config snapshot, looks at a bounded window of history, and returns at most
    one result. Errors stay inside the engine: they are logged and reported
    as "no suggestion".
    """

    def __init__(
        self,
        name: str,
        store: SQLitePartStore,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.name = name
        self.store = store
        self.rng = rng or random.Random()
        self.clock = clock
        self.hit_count = 0
        self.miss_count = 0
        logger.info(f"{name} initialized")

    def _roll(self, chance: float) -> bool:
        """True when the probability gate lets this turn through"""
        return self.rng.random() < chance

    def _record(self, result: object) -> None:
        if result:
            self.hit_count += 1
            logger.debug(f"{self.name}: suggestion found")
        else:
            self.miss_count += 1

    def _log_failure(self, error: Exception) -> None:
        logger.error(f"{self.name} error: {error}")

    def get_stats(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "hits": self.hit_count,
            "misses": self.miss_count,
        }
