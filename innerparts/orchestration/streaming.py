"""
Streaming generation coordinator.

Drives one generation cycle: token consumption, annotation demultiplexing,
error and cancellation handling, and the bookkeeping that follows a
successful reply.

States per cycle: IDLE -> STREAMING -> (SIDE_CHANNEL | COMPLETE) -> IDLE
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from loguru import logger

from innerparts.core.config import settings
from innerparts.core.errors import GenerationError
from innerparts.core.models import Annotation, Memory, MemoryType, PartThought, Persona
from innerparts.engines.quiet_tracker import QuietTracker
from innerparts.llm.base import ChatMessage, GenerationClient
from innerparts.orchestration.annotations import AnnotationDemuxer, fix_ghost_capitalization
from innerparts.orchestration.session import SessionState
from innerparts.storage.sqlite_store import SQLitePartStore

ANCHOR_TEXT_LENGTH = 50


class GenerationState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    SIDE_CHANNEL = "side_channel"
    COMPLETE = "complete"


@dataclass
class GenerationRequest:
    """One reply to generate"""

    persona: Persona
    messages: List[ChatMessage]
    anchor_text: str = ""
    anchor_offset: int = 0
    writer_text: str = ""  # text before the cursor, for ghost-text casing
    annotations_enabled: bool = False
    is_disagreement: bool = False
    responding_to_part_id: Optional[str] = None
    max_tokens: int = settings.DEFAULT_MAX_TOKENS


@dataclass
class StreamHooks:
    """Where a cycle's signals go; the orchestrator wires thought or disagreement callbacks here"""

    on_start: Callable[[Persona], None]
    on_token: Callable[[str], None]
    on_complete: Callable[[PartThought], None]
    on_error: Callable[[Exception], None]
    on_annotations: Callable[[Annotation, str], None]


class StreamingCoordinator:
    """
    Runs one generation at a time against a GenerationClient.

    On transport failure the error is wrapped in GenerationError, reported
    through ``on_error``, and nothing is persisted. Cancellation propagates
    to the caller, again without persisting anything.
    """

    def __init__(
        self,
        client: GenerationClient,
        store: SQLitePartStore,
        quiet_tracker: QuietTracker,
        session: SessionState,
        observer_id: Optional[str] = None,
        observation_min_length: int = settings.OBSERVATION_MIN_LENGTH,
    ) -> None:
        self.client = client
        self.store = store
        self.quiet_tracker = quiet_tracker
        self.session = session
        self.observer_id = observer_id
        self.observation_min_length = observation_min_length
        self.state = GenerationState.IDLE
        self.completed_count = 0
        self.failed_count = 0
        logger.info("StreamingCoordinator initialized")

    async def run(self, request: GenerationRequest, hooks: StreamHooks) -> Optional[PartThought]:
        """
        Stream one reply, then persist it.

        Returns:
            The persisted thought, or None on error or an empty reply

        Raises:
            asyncio.CancelledError: if the host aborted the generation
        """
        persona = request.persona
        demuxer = AnnotationDemuxer(enabled=request.annotations_enabled)

        self.state = GenerationState.STREAMING
        hooks.on_start(persona)

        try:
            tokens = self.client.stream(request.messages, request.max_tokens)
            async for chunk in demuxer.stream(tokens):
                hooks.on_token(chunk)
                if demuxer.detected and self.state == GenerationState.STREAMING:
                    self.state = GenerationState.SIDE_CHANNEL
            if demuxer.detected:
                self.state = GenerationState.SIDE_CHANNEL
        except asyncio.CancelledError:
            logger.info(f"Generation for {persona.id} cancelled")
            self.state = GenerationState.IDLE
            raise
        except Exception as e:
            self.failed_count += 1
            self.state = GenerationState.IDLE
            error = e if isinstance(e, GenerationError) else GenerationError(str(e), part_id=persona.id)
            logger.error(f"Generation for {persona.id} failed: {e}")
            hooks.on_error(error)
            return None

        thought_text, annotation = demuxer.result()
        if not thought_text:
            logger.debug(f"Empty reply from {persona.id}, nothing to persist")
            self.state = GenerationState.IDLE
            return None

        if annotation and annotation.ghost_text:
            annotation.ghost_text = fix_ghost_capitalization(annotation.ghost_text, request.writer_text)

        thought = PartThought(
            part_id=persona.id,
            entry_id=self.session.entry_id,
            content=thought_text,
            anchor_text=request.anchor_text[-ANCHOR_TEXT_LENGTH:],
            anchor_offset=request.anchor_offset,
            is_disagreement=request.is_disagreement,
            responding_to_part_id=request.responding_to_part_id,
        )

        self.state = GenerationState.COMPLETE
        try:
            await self._record_success(persona, thought)
        finally:
            self.state = GenerationState.IDLE

        self.completed_count += 1
        hooks.on_complete(thought)
        if annotation:
            hooks.on_annotations(annotation, persona.color)
        return thought

    async def _record_success(self, persona: Persona, thought: PartThought) -> None:
        await self.store.append_thought(thought)
        self.session.recent_speakers.push(persona.id)

        if len(thought.content) > self.observation_min_length:
            memory = Memory(
                part_id=persona.id,
                entry_id=thought.entry_id,
                content=thought.content,
                type=MemoryType.OBSERVATION,
            )
            await self.store.append_memory(memory)
            persona.memories.append(memory)

        await self.quiet_tracker.update_last_active(persona)

        if self.observer_id and persona.id == self.observer_id:
            await self.quiet_tracker.record_observer_spoke(persona.id, thought.entry_id)

        logger.debug(
            "Thought persisted for {part} ({length} chars)",
            part=persona.id,
            length=len(thought.content),
        )

    def get_stats(self) -> dict:
        return {
            "state": self.state.value,
            "completed": self.completed_count,
            "failed": self.failed_count,
        }
