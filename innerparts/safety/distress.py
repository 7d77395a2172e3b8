"""Periodic, cooldown-gated emotion and distress check"""

import time
from typing import Callable, Optional

from loguru import logger

from innerparts.core.config import settings
from innerparts.core.global_config import GlobalConfig
from innerparts.core.models import EmotionReading
from innerparts.llm.base import EmotionClassifier
from innerparts.safety.grounding import GroundingController


class DistressMonitor:
    """
    Sends accumulated text to the emotion classifier at most once per cooldown
    window and activates grounding when the emergency-grounding feature is on
    and the distress level reaches the configured threshold.

    Failures are logged and swallowed: the check never blocks or breaks the
    writing flow.
    """

    def __init__(
        self,
        classifier: EmotionClassifier,
        grounding: GroundingController,
        cooldown_seconds: float = settings.EMOTION_CHECK_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.classifier = classifier
        self.grounding = grounding
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self.last_check_at: Optional[float] = None

    def is_due(self) -> bool:
        if self.last_check_at is None:
            return True
        return self._clock() - self.last_check_at > self.cooldown_seconds

    async def check(self, text: str, config: GlobalConfig) -> Optional[EmotionReading]:
        """
        Classify ``text`` if the cooldown has elapsed.

        Returns:
            The reading, or None when skipped (cooldown) or failed
        """
        if not self.is_due():
            return None
        self.last_check_at = self._clock()

        try:
            reading = await self.classifier.classify(text)
        except Exception as e:
            logger.warning(f"Emotion/distress check failed, skipping this cycle: {e}")
            return None

        if config.features.emergency_grounding:
            threshold = config.grounding.intensity_threshold
            if reading.distress_level >= threshold:
                logger.warning(
                    "Distress level {level} >= {threshold}, activating grounding",
                    level=reading.distress_level,
                    threshold=threshold,
                )
                self.grounding.activate("distress", config)

        return reading
