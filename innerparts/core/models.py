"""Core data models for the part orchestration engine"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def generate_id() -> str:
    """Generate a fresh record id"""
    return str(uuid4())


class PartRole(str, Enum):
    """Archetypal function a persona plays in the writer's inner system"""

    PROTECTOR = "protector"
    EXILE = "exile"
    MANAGER = "manager"
    FIREFIGHTER = "firefighter"
    SELF = "self"


class PauseType(str, Enum):
    """Classified writing pause, produced by the external pause detector"""

    SHORT_PAUSE = "short_pause"
    SENTENCE_COMPLETE = "sentence_complete"
    CADENCE_SLOWDOWN = "cadence_slowdown"
    PARAGRAPH_BREAK = "paragraph_break"
    LONG_PAUSE = "long_pause"
    ELLIPSIS = "ellipsis"
    QUESTION = "question"
    TRAILING_OFF = "trailing_off"


class EmotionTag(str, Enum):
    """Emotional tone of the writing"""

    NEUTRAL = "neutral"
    TENDER = "tender"
    ANXIOUS = "anxious"
    ANGRY = "angry"
    SAD = "sad"
    JOYFUL = "joyful"
    CONTEMPLATIVE = "contemplative"
    FEARFUL = "fearful"
    HOPEFUL = "hopeful"
    CONFLICTED = "conflicted"

    @classmethod
    def parse(cls, value: object) -> Optional["EmotionTag"]:
        """Map a raw classifier string to a tag, or None when unrecognized"""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class MemoryType(str, Enum):
    """Kinds of persona memory. Legacy memories carry no type."""

    REFLECTION = "reflection"
    PATTERN = "pattern"
    INTERACTION = "interaction"
    OBSERVATION = "observation"


class Memory(BaseModel):
    """Append-only memory a persona carries across entries"""

    id: str = Field(default_factory=generate_id)
    part_id: str
    entry_id: str
    content: str
    type: Optional[MemoryType] = None
    timestamp: datetime = Field(default_factory=datetime.now)


class Persona(BaseModel):
    """
    One of the AI voices that may respond to the writer.

    Static definition (voice, role, concern, prompt) plus learned attributes.
    Learned keywords/emotions/catchphrases are written by an external growth
    process; only ``last_active_at`` and ``quiet_since`` are updated here.
    """

    id: str
    name: str
    color: str
    color_light: str = ""
    role: PartRole
    voice_description: str = ""
    concern: str = ""
    system_prompt: str = ""
    system_prompt_addition: str = ""
    is_seeded: bool = False
    created_at: datetime = Field(default_factory=datetime.now)

    # Learned state
    learned_keywords: set[str] = Field(default_factory=set)
    learned_emotions: set[EmotionTag] = Field(default_factory=set)
    catchphrases: list[str] = Field(default_factory=list)
    last_active_at: Optional[datetime] = None
    quiet_since: Optional[datetime] = None

    # Loaded alongside the persona at session start
    memories: list[Memory] = Field(default_factory=list)


class PauseEvent(BaseModel):
    """A classified idle/cadence moment during writing"""

    model_config = ConfigDict(frozen=True)

    type: PauseType
    duration: float = 0.0  # seconds
    current_text: str
    recent_text: str
    cursor_position: int = 0
    timestamp: datetime = Field(default_factory=datetime.now)


class PartThought(BaseModel):
    """Result of one successful generation cycle"""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=generate_id)
    part_id: str
    entry_id: str
    content: str
    anchor_text: str = ""
    anchor_offset: int = 0
    timestamp: datetime = Field(default_factory=datetime.now)
    is_disagreement: bool = False
    responding_to_part_id: Optional[str] = None


class Annotation(BaseModel):
    """Structured side-channel payload: highlights and trailing ghost text"""

    highlights: list[str] = Field(default_factory=list)
    ghost_text: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.highlights and not self.ghost_text


class EntrySummary(BaseModel):
    """Reflection-produced summary of a completed journal entry"""

    entry_id: str
    themes: list[str] = Field(default_factory=list)
    emotional_arc: str = ""
    key_moments: list[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=datetime.now)


class Entry(BaseModel):
    """A journal entry's plain text"""

    id: str = Field(default_factory=generate_id)
    plain_text: str = ""
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class UserProfile(BaseModel):
    """Accumulated picture of the writer, maintained by the reflection process"""

    recurring_themes: list[str] = Field(default_factory=list)
    emotional_patterns: list[str] = Field(default_factory=list)
    avoidance_patterns: list[str] = Field(default_factory=list)
    growth_signals: list[str] = Field(default_factory=list)
    inner_landscape: str = ""
    updated_at: datetime = Field(default_factory=datetime.now)


class TimeOfDay(str, Enum):
    EARLY_MORNING = "early-morning"
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    NIGHT = "night"


class SessionLog(BaseModel):
    """One writing session, recorded for ritual detection"""

    id: str = Field(default_factory=generate_id)
    started_at: datetime = Field(default_factory=datetime.now)
    word_count: int = 0
    time_of_day: TimeOfDay
    day_of_week: int  # 0 = Sunday


class SessionRitual(BaseModel):
    """A detected habit in when/how long the writer writes"""

    id: str = Field(default_factory=generate_id)
    pattern: str
    description: str
    detected_at: datetime = Field(default_factory=datetime.now)
    session_count: int


class EchoResult(BaseModel):
    """A fragment of a past entry surfaced in place of a persona response"""

    text: str
    entry_id: str
    date: datetime


class QuoteResult(BaseModel):
    """A past passage a persona may quote back"""

    text: str
    entry_id: str


class ThreadResult(BaseModel):
    """A theme from a past entry that was never picked up again"""

    theme: str
    entry_id: str
    summary: str


class EmotionReading(BaseModel):
    """Classifier output for recent text"""

    emotion: str = ""
    distress_level: int = 0

    @property
    def tag(self) -> Optional[EmotionTag]:
        return EmotionTag.parse(self.emotion)
