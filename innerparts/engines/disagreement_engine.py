"""Disagreement: a second persona pushes back on what the first one said"""

import random
import time
from typing import Callable, List, Optional

from loguru import logger

from innerparts.core.global_config import GlobalConfig
from innerparts.core.models import PartRole, Persona

ROLE_OPPOSITION: dict[PartRole, list[PartRole]] = {
    PartRole.PROTECTOR: [PartRole.EXILE],
    PartRole.EXILE: [PartRole.PROTECTOR],
    PartRole.MANAGER: [PartRole.FIREFIGHTER],
    PartRole.FIREFIGHTER: [PartRole.MANAGER],
    PartRole.SELF: [],
}

DISAGREEMENT_COOLDOWN_SECONDS = 15 * 60


class DisagreementEngine:
    """
    Decides whether an opposing-role persona should follow up.

    Gated by ``features.partsDisagreeing``, ``partIntelligence.disagreeChance``,
    a minimum roster size, and one disagreement per fifteen minutes.
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.rng = rng or random.Random()
        self._clock = clock
        self.last_disagreement_at: Optional[float] = None
        logger.info("DisagreementEngine initialized")

    def should_disagree(
        self,
        original: Persona,
        roster: List[Persona],
        config: GlobalConfig,
    ) -> Optional[Persona]:
        """
        Pick an opposing persona, or None.

        Args:
            original: The persona that just spoke
            roster: Every persona in the session
            config: Current snapshot

        Returns:
            A persona whose role opposes ``original``'s, chosen at random
        """
        try:
            if not config.features.parts_disagreeing:
                return None

            intelligence = config.part_intelligence
            if self.rng.random() >= intelligence.disagree_chance:
                return None
            if len(roster) < intelligence.disagree_min_parts:
                return None

            now = self._clock()
            if (
                self.last_disagreement_at is not None
                and now - self.last_disagreement_at < DISAGREEMENT_COOLDOWN_SECONDS
            ):
                return None

            opposing = ROLE_OPPOSITION.get(original.role, [])
            candidates = [p for p in roster if p.id != original.id and p.role in opposing]
            if not candidates:
                return None

            return self.rng.choice(candidates)
        except Exception as e:
            logger.error(f"DisagreementEngine error: {e}")
            return None

    def mark_disagreed(self) -> None:
        """Start the cooldown once a disagreement has actually been generated"""
        self.last_disagreement_at = self._clock()
