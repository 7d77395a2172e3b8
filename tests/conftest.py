"""Shared fixtures and fakes for the innerparts test suite"""

import asyncio
import random
from datetime import datetime
from typing import Any, List, Optional

import pytest

from innerparts.core.global_config import GlobalConfig
from innerparts.core.models import EmotionReading, PartRole, PauseEvent, PauseType, Persona
from innerparts.storage.sqlite_store import SQLitePartStore

NOW = datetime(2026, 3, 18, 10, 30)  # a Wednesday morning


class ZeroRandom(random.Random):
    """Every probability roll passes and jitter is always zero"""

    def random(self) -> float:
        return 0.0


class ScriptedClient:
    """Generation client that yields canned tokens, optionally failing or waiting on a gate"""

    def __init__(
        self,
        tokens: Optional[List[str]] = None,
        error: Optional[Exception] = None,
        gate: Optional[asyncio.Event] = None,
    ) -> None:
        self.tokens = tokens if tokens is not None else ["That still ", "hurts, doesn't it."]
        self.error = error
        self.gate = gate
        self.calls: List[Any] = []
        self.started = asyncio.Event()

    async def stream(self, messages, max_tokens):
        self.calls.append(messages)
        self.started.set()
        for token in self.tokens:
            if self.gate is not None:
                await self.gate.wait()
            yield token
        if self.error is not None:
            raise self.error


class FakeClassifier:
    def __init__(self, emotion: str = "sad", distress_level: int = 0, error: Optional[Exception] = None) -> None:
        self.reading = EmotionReading(emotion=emotion, distress_level=distress_level)
        self.error = error
        self.calls = 0

    async def classify(self, text: str) -> EmotionReading:
        self.calls += 1
        if self.error:
            raise self.error
        return self.reading


def make_persona(
    id: str = "tender",
    role: PartRole = PartRole.EXILE,
    **kwargs,
) -> Persona:
    return Persona(
        id=id,
        name=kwargs.pop("name", f"The {id.title()}"),
        color=kwargs.pop("color", "#C4935A"),
        role=role,
        **kwargs,
    )


def make_event(
    recent_text: str = "and I keep thinking about her",
    type: PauseType = PauseType.TRAILING_OFF,
    current_text: Optional[str] = None,
    **kwargs,
) -> PauseEvent:
    current = current_text if current_text is not None else f"Today was long. {recent_text}"
    return PauseEvent(
        type=type,
        current_text=current,
        recent_text=recent_text,
        cursor_position=kwargs.pop("cursor_position", len(current)),
        **kwargs,
    )


def make_config(**sections) -> GlobalConfig:
    """GlobalConfig from camelCase section mappings, e.g. features={"partsEnabled": True}"""
    return GlobalConfig.from_mapping(sections)


@pytest.fixture
async def store():
    """Connected in-memory store"""
    store = SQLitePartStore(":memory:")
    await store.connect()
    yield store
    await store.close()
