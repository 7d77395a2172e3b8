"""Core data models and configuration"""

from innerparts.core.models import (
    Annotation,
    EmotionReading,
    EmotionTag,
    EntrySummary,
    Memory,
    MemoryType,
    PartRole,
    PartThought,
    PauseEvent,
    PauseType,
    Persona,
    UserProfile,
)
from innerparts.core.global_config import GlobalConfig
from innerparts.core.config import settings

__all__ = [
    "Annotation",
    "EmotionReading",
    "EmotionTag",
    "EntrySummary",
    "Memory",
    "MemoryType",
    "PartRole",
    "PartThought",
    "PauseEvent",
    "PauseType",
    "Persona",
    "UserProfile",
    "GlobalConfig",
    "settings",
]
