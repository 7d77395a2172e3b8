"""Rituals, not streaks: notice when and how the writer habitually writes"""

from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import List, Optional

from loguru import logger

from innerparts.core.global_config import GlobalConfig
from innerparts.core.models import SessionLog, SessionRitual, TimeOfDay
from innerparts.engines.base import SuggestionEngine

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

TIME_LABELS = {
    TimeOfDay.EARLY_MORNING: "early morning",
    TimeOfDay.MORNING: "morning",
    TimeOfDay.AFTERNOON: "afternoon",
    TimeOfDay.EVENING: "evening",
    TimeOfDay.NIGHT: "night",
}

RITUAL_SHARE_THRESHOLD = 0.6
LENGTH_RATIO_THRESHOLD = 1.5
MIN_SESSIONS = 3


def categorize_hour(hour: int) -> TimeOfDay:
    if 5 <= hour < 8:
        return TimeOfDay.EARLY_MORNING
    if 8 <= hour < 12:
        return TimeOfDay.MORNING
    if 12 <= hour < 17:
        return TimeOfDay.AFTERNOON
    if 17 <= hour < 21:
        return TimeOfDay.EVENING
    return TimeOfDay.NIGHT


def sunday_based_weekday(moment: datetime) -> int:
    """0 = Sunday ... 6 = Saturday"""
    return (moment.weekday() + 1) % 7


class RitualEngine(SuggestionEngine):
    """
    Statistical pattern detection over the recent session-log window.

    A time-of-day, day-of-week, or day x time bucket is a ritual when its share
    of sessions exceeds 60%. Separately, the time bucket whose average word
    count exceeds 1.5x the mean of the other buckets' averages is reported as
    the writer's longest-session time.
    """

    def __init__(self, store, rng=None, **kwargs) -> None:
        super().__init__("RitualEngine", store, rng, **kwargs)

    async def log_session(self, word_count: int, started_at: Optional[datetime] = None) -> SessionLog:
        started_at = started_at or self.clock()
        log = SessionLog(
            started_at=started_at,
            word_count=word_count,
            time_of_day=categorize_hour(started_at.hour),
            day_of_week=sunday_based_weekday(started_at),
        )
        await self.store.append_session_log(log)
        logger.debug(f"Logged session: {word_count} words, {log.time_of_day.value}")
        return log

    async def detect_rituals(self, config: GlobalConfig) -> List[SessionRitual]:
        if not config.features.rituals_not_streaks:
            return []

        try:
            window_start = self.clock() - timedelta(days=config.engagement.ritual_detection_window)
            logs = await self.store.list_session_logs(since=window_start)
            rituals = self.analyze(logs)
            self._record(rituals)
            return rituals
        except Exception as e:
            self._log_failure(e)
            return []

    def analyze(self, logs: List[SessionLog]) -> List[SessionRitual]:
        """Pure pattern detection over an already-windowed list of logs"""
        if len(logs) < MIN_SESSIONS:
            return []

        total = len(logs)
        now = self.clock()
        rituals: List[SessionRitual] = []

        time_counts = Counter(log.time_of_day for log in logs)
        for time, count in time_counts.items():
            if count / total > RITUAL_SHARE_THRESHOLD:
                rituals.append(SessionRitual(
                    pattern=f"time:{time.value}",
                    description=f"{TIME_LABELS[time]} writing has become a pattern",
                    detected_at=now,
                    session_count=count,
                ))

        day_counts = Counter(log.day_of_week for log in logs)
        for day, count in day_counts.items():
            if count / total > RITUAL_SHARE_THRESHOLD:
                rituals.append(SessionRitual(
                    pattern=f"day:{day}",
                    description=f"You write most on {DAY_NAMES[day]}s",
                    detected_at=now,
                    session_count=count,
                ))

        combo_counts = Counter((log.day_of_week, log.time_of_day) for log in logs)
        for (day, time), count in combo_counts.items():
            if count / total > RITUAL_SHARE_THRESHOLD:
                rituals.append(SessionRitual(
                    pattern=f"combo:{day}:{time.value}",
                    description=f"You write most on {DAY_NAMES[day]} {TIME_LABELS[time]}s",
                    detected_at=now,
                    session_count=count,
                ))

        length_ritual = self._longest_sessions(logs, now)
        if length_ritual:
            rituals.append(length_ritual)

        return rituals

    def _longest_sessions(self, logs: List[SessionLog], now: datetime) -> Optional[SessionRitual]:
        words_by_time: dict[TimeOfDay, list[int]] = defaultdict(list)
        for log in logs:
            words_by_time[log.time_of_day].append(log.word_count)

        if len(words_by_time) < 2:
            return None

        averages = {time: sum(words) / len(words) for time, words in words_by_time.items()}
        longest = max(averages, key=averages.get)
        others = [avg for time, avg in averages.items() if time != longest]
        other_avg = sum(others) / len(others)

        if averages[longest] <= other_avg * LENGTH_RATIO_THRESHOLD:
            return None

        return SessionRitual(
            pattern=f"length:{longest.value}",
            description=f"Your {TIME_LABELS[longest]} sessions tend to be longest",
            detected_at=now,
            session_count=len(words_by_time[longest]),
        )
