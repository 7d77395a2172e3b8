"""
Heuristic persona scoring and selection.

Each persona gets one number per pause event. Terms, in order:

1. recency penalty (-50 / -25 for the last two speakers)
2. pause-type affinity by role (5-25, default 10)
3. keyword relevance (+8 per keyword found, capped at 30)
4. emotional match (+15)
5. jitter in [0, 15) from the injected random source
6. grounding adjustment (self up, everyone else down, observer further down)
7. quiet-observer adjustments (avoidance overlap, stricter recency,
   pause-type gate, cross-entry cooldown)
8. quiet penalty, then the returning-persona multiplier, applied last
"""

import random
import re
from dataclasses import dataclass, field
from typing import List, Optional

from loguru import logger

from innerparts.core.global_config import GlobalConfig
from innerparts.core.models import EmotionTag, PartRole, PauseEvent, PauseType, Persona
from innerparts.core.text import extract_words
from innerparts.orchestration.session import SessionState

RECENCY_PENALTIES = (50, 25)
OBSERVER_RECENCY_PENALTIES = (80, 50)

KEYWORD_HIT = 8
KEYWORD_CAP = 30
EMOTION_MATCH = 15
JITTER_MAX = 15
DEFAULT_AFFINITY = 10

OBSERVER_GROUNDING_PENALTY = 60
OBSERVER_AVOIDANCE_HIT = 10
OBSERVER_AVOIDANCE_CAP = 30
OBSERVER_PAUSE_PENALTY = 40
OBSERVER_COOLDOWN_PENALTY = 100
OBSERVER_COOLDOWN_ENTRIES = 3
OBSERVER_DISABLED_SCORE = -1000.0

QUIET_SCORE_FLOOR = 30
QUIET_PENALTY = 40

OBSERVER_PAUSE_TYPES = frozenset({
    PauseType.TRAILING_OFF,
    PauseType.ELLIPSIS,
    PauseType.LONG_PAUSE,
    PauseType.CADENCE_SLOWDOWN,
})

PAUSE_AFFINITY: dict[PartRole, dict[PauseType, int]] = {
    PartRole.PROTECTOR: {
        PauseType.SHORT_PAUSE: 5,
        PauseType.SENTENCE_COMPLETE: 10,
        PauseType.CADENCE_SLOWDOWN: 20,
        PauseType.PARAGRAPH_BREAK: 10,
        PauseType.LONG_PAUSE: 5,
        PauseType.ELLIPSIS: 15,
        PauseType.QUESTION: 5,
        PauseType.TRAILING_OFF: 25,
    },
    PartRole.EXILE: {
        PauseType.SHORT_PAUSE: 5,
        PauseType.SENTENCE_COMPLETE: 10,
        PauseType.CADENCE_SLOWDOWN: 15,
        PauseType.PARAGRAPH_BREAK: 10,
        PauseType.LONG_PAUSE: 25,
        PauseType.ELLIPSIS: 20,
        PauseType.QUESTION: 10,
        PauseType.TRAILING_OFF: 15,
    },
    PartRole.SELF: {
        PauseType.SHORT_PAUSE: 5,
        PauseType.SENTENCE_COMPLETE: 10,
        PauseType.CADENCE_SLOWDOWN: 10,
        PauseType.PARAGRAPH_BREAK: 15,
        PauseType.LONG_PAUSE: 25,
        PauseType.ELLIPSIS: 10,
        PauseType.QUESTION: 20,
        PauseType.TRAILING_OFF: 10,
    },
    PartRole.FIREFIGHTER: {
        PauseType.SHORT_PAUSE: 10,
        PauseType.SENTENCE_COMPLETE: 15,
        PauseType.CADENCE_SLOWDOWN: 5,
        PauseType.PARAGRAPH_BREAK: 15,
        PauseType.LONG_PAUSE: 10,
        PauseType.ELLIPSIS: 5,
        PauseType.QUESTION: 20,
        PauseType.TRAILING_OFF: 5,
    },
    PartRole.MANAGER: {
        PauseType.SHORT_PAUSE: 5,
        PauseType.SENTENCE_COMPLETE: 15,
        PauseType.CADENCE_SLOWDOWN: 10,
        PauseType.PARAGRAPH_BREAK: 25,
        PauseType.LONG_PAUSE: 15,
        PauseType.ELLIPSIS: 10,
        PauseType.QUESTION: 10,
        PauseType.TRAILING_OFF: 10,
    },
}

ROLE_KEYWORDS: dict[PartRole, list[str]] = {
    PartRole.PROTECTOR: [
        "avoid", "ignore", "pretend", "fine", "okay", "whatever",
        "anyway", "but", "should", "just", "never mind",
    ],
    PartRole.EXILE: [
        "hurt", "miss", "wish", "love", "feel", "heart", "pain",
        "alone", "cry", "soft", "remember", "lost", "need", "warm",
    ],
    PartRole.SELF: [
        "wonder", "what if", "maybe", "breathe", "moment", "notice",
        "space", "quiet", "sit with", "here", "presence",
    ],
    PartRole.FIREFIGHTER: [
        "do", "change", "act", "move", "enough", "tired of", "want",
        "go", "make", "try", "decide", "fight", "ready",
    ],
    PartRole.MANAGER: [
        "again", "always", "every time", "pattern", "same", "remind",
        "before", "back then", "cycle", "repeat", "used to",
    ],
}

ROLE_EMOTIONS: dict[PartRole, frozenset[EmotionTag]] = {
    PartRole.PROTECTOR: frozenset({EmotionTag.ANXIOUS, EmotionTag.CONFLICTED, EmotionTag.NEUTRAL}),
    PartRole.EXILE: frozenset({EmotionTag.SAD, EmotionTag.TENDER, EmotionTag.HOPEFUL, EmotionTag.FEARFUL}),
    PartRole.SELF: frozenset({EmotionTag.CONTEMPLATIVE, EmotionTag.NEUTRAL, EmotionTag.TENDER}),
    PartRole.FIREFIGHTER: frozenset({EmotionTag.ANGRY, EmotionTag.CONFLICTED, EmotionTag.HOPEFUL, EmotionTag.JOYFUL}),
    PartRole.MANAGER: frozenset({EmotionTag.CONTEMPLATIVE, EmotionTag.SAD, EmotionTag.CONFLICTED}),
}

_CONCERN_SPLIT = re.compile(r"[^\w']+")


@dataclass
class ScoringContext:
    """Everything the scorer reads for one cycle, gathered before scoring starts"""

    session: SessionState
    config: GlobalConfig
    grounding_active: bool = False
    quiet_ids: frozenset[str] = frozenset()
    observer_entries_since: Optional[int] = None
    avoidance_words: frozenset[str] = frozenset()

    @property
    def observer_id(self) -> str:
        return self.config.part_intelligence.quiet_observer_id


@dataclass
class ScoredPersona:
    persona: Persona
    score: float
    breakdown: dict[str, float] = field(default_factory=dict)


def pause_type_affinity(role: PartRole, pause_type: PauseType) -> int:
    return PAUSE_AFFINITY.get(role, {}).get(pause_type, DEFAULT_AFFINITY)


def concern_tokens(concern: str) -> List[str]:
    return [w for w in _CONCERN_SPLIT.split(concern.lower()) if len(w) > 3]


def content_relevance(persona: Persona, text: str) -> int:
    """+8 per role/concern/learned keyword found in ``text`` (case-insensitive), capped at 30"""
    lowered = text.lower()
    keywords = {
        *ROLE_KEYWORDS.get(persona.role, []),
        *concern_tokens(persona.concern),
        *(k.lower() for k in persona.learned_keywords),
    }
    relevance = sum(KEYWORD_HIT for keyword in keywords if keyword and keyword in lowered)
    return min(relevance, KEYWORD_CAP)


def emotion_match(persona: Persona, emotion: EmotionTag) -> int:
    affinities = ROLE_EMOTIONS.get(persona.role, frozenset()) | persona.learned_emotions
    return EMOTION_MATCH if emotion in affinities else 0


def avoidance_overlap(avoidance_words: frozenset[str], text: str) -> int:
    """+10 per avoidance-pattern word present in ``text``, capped at 30"""
    if not avoidance_words:
        return 0
    words = set(extract_words(text))
    hits = len(words & avoidance_words)
    return min(hits * OBSERVER_AVOIDANCE_HIT, OBSERVER_AVOIDANCE_CAP)


class HeuristicScorer:
    """
    Scores and selects personas for a pause event.

    Randomness comes only from the injected ``rng``, so a seeded source makes
    selection reproducible. Ties are broken by roster order (the sort is stable).
    """

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self.rng = rng or random.Random()

    def score(self, persona: Persona, event: PauseEvent, context: ScoringContext) -> float:
        return self.score_detailed(persona, event, context).score

    def score_detailed(self, persona: Persona, event: PauseEvent, context: ScoringContext) -> ScoredPersona:
        config = context.config
        is_observer = persona.id == context.observer_id

        if is_observer and not config.features.quiet_observer:
            return ScoredPersona(persona, OBSERVER_DISABLED_SCORE, {"disabled": OBSERVER_DISABLED_SCORE})

        breakdown: dict[str, float] = {}

        position = context.session.recent_speakers.position(persona.id)
        penalties = OBSERVER_RECENCY_PENALTIES if is_observer else RECENCY_PENALTIES
        recency = 0
        if position is not None and position < len(penalties):
            recency = -penalties[position]
        breakdown["recency"] = recency

        breakdown["affinity"] = pause_type_affinity(persona.role, event.type)
        breakdown["relevance"] = content_relevance(persona, event.recent_text)
        breakdown["emotion"] = emotion_match(persona, context.session.current_emotion)
        breakdown["jitter"] = self.rng.random() * JITTER_MAX

        if context.grounding_active:
            grounding = config.grounding
            if persona.role == PartRole.SELF:
                adjustment = grounding.self_role_score_bonus
            else:
                adjustment = -grounding.other_role_penalty
            if is_observer:
                adjustment -= OBSERVER_GROUNDING_PENALTY
            breakdown["grounding"] = adjustment

        if is_observer:
            breakdown["avoidance"] = avoidance_overlap(context.avoidance_words, event.recent_text)
            if event.type not in OBSERVER_PAUSE_TYPES:
                breakdown["pause_gate"] = -OBSERVER_PAUSE_PENALTY
            since = context.observer_entries_since
            if since is not None and 0 < since < OBSERVER_COOLDOWN_ENTRIES:
                breakdown["entry_cooldown"] = -OBSERVER_COOLDOWN_PENALTY

        score = sum(breakdown.values())

        if persona.id in context.quiet_ids and score < QUIET_SCORE_FLOOR:
            breakdown["quiet"] = -QUIET_PENALTY
            score -= QUIET_PENALTY

        if persona.quiet_since is not None:
            multiplier = config.part_intelligence.return_bonus_multiplier
            breakdown["return_multiplier"] = multiplier
            score *= multiplier

        return ScoredPersona(persona, score, breakdown)

    def rank(
        self,
        personas: List[Persona],
        event: PauseEvent,
        context: ScoringContext,
    ) -> List[ScoredPersona]:
        """All personas scored, highest first"""
        scored = [self.score_detailed(p, event, context) for p in personas]
        return sorted(scored, key=lambda s: s.score, reverse=True)

    def select(
        self,
        personas: List[Persona],
        event: PauseEvent,
        context: ScoringContext,
    ) -> Optional[ScoredPersona]:
        """
        Top-scoring persona, or None when nobody scores above zero.

        "No response" is a normal outcome, not an error.
        """
        if not personas:
            return None

        ranked = self.rank(personas, event, context)
        logger.debug(
            "Scores for {pause}: {table}",
            pause=event.type.value,
            table=", ".join(f"{s.persona.id}={s.score:.1f}" for s in ranked),
        )

        top = ranked[0]
        if top.score <= 0:
            logger.debug(f"No persona above zero (top {top.persona.id}={top.score:.1f})")
            return None
        return top
