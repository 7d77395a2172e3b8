"""
Part orchestrator: the per-session cycle driver.

One orchestrator is built per writing session. It owns the session state
(recent speakers, generation lock, current emotion), the grounding
controller, the ancillary engines and the streaming coordinator, and runs
one selection pipeline per pause event.
"""

import asyncio
import random
from datetime import datetime
from typing import Callable, List, Optional

from loguru import logger

from innerparts.core.config import settings
from innerparts.core.global_config import DEFAULT_CONFIG, GlobalConfig
from innerparts.core.models import PartThought, PauseEvent, Persona
from innerparts.core.text import extract_words
from innerparts.engines.disagreement_engine import DisagreementEngine
from innerparts.engines.echo_engine import EchoEngine
from innerparts.engines.quiet_tracker import QuietTracker, entries_since
from innerparts.engines.quote_engine import QuoteEngine
from innerparts.engines.ritual_engine import RitualEngine
from innerparts.engines.thread_engine import ThreadEngine
from innerparts.llm.base import EmotionClassifier, GenerationClient
from innerparts.orchestration.callbacks import OrchestratorCallbacks, coerce_callbacks
from innerparts.orchestration.prompts import (
    PromptEnrichment,
    build_disagreement_messages,
    build_part_messages,
)
from innerparts.orchestration.scorer import HeuristicScorer, ScoringContext
from innerparts.orchestration.session import SessionMemoryCache, SessionState
from innerparts.orchestration.streaming import GenerationRequest, StreamHooks, StreamingCoordinator
from innerparts.safety.crisis import match_crisis_pattern
from innerparts.safety.distress import DistressMonitor
from innerparts.safety.grounding import GroundingController
from innerparts.storage.sqlite_store import SQLitePartStore


class PartOrchestrator:
    """
    Decides whether and which persona answers a pause, and drives the reply.

    Exactly one generation is in flight per session. Pause events arriving
    while a generation runs are dropped, never queued.

    Example:
        orchestrator = PartOrchestrator(store, client, classifier, callbacks, config)
        await orchestrator.start_session(entry_id)
        await orchestrator.handle_pause(event)
    """

    def __init__(
        self,
        store: SQLitePartStore,
        client: GenerationClient,
        classifier: Optional[EmotionClassifier] = None,
        callbacks: Optional[OrchestratorCallbacks] = None,
        config: Optional[GlobalConfig] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = datetime.now,
        disagreement_delay: float = settings.DISAGREEMENT_DELAY_SECONDS,
    ) -> None:
        self.store = store
        self.client = client
        self.callbacks = coerce_callbacks(callbacks)
        self.config = config or DEFAULT_CONFIG
        self.rng = rng or random.Random()
        self.disagreement_delay = disagreement_delay

        self.session = SessionState()
        self.memory_cache = SessionMemoryCache(store)
        self.personas: List[Persona] = []

        self.grounding = GroundingController()
        self.distress = DistressMonitor(classifier, self.grounding) if classifier else None

        self.scorer = HeuristicScorer(self.rng)
        self.echo_engine = EchoEngine(store, rng=self.rng, clock=clock)
        self.quote_engine = QuoteEngine(store, rng=self.rng, clock=clock)
        self.thread_engine = ThreadEngine(store, rng=self.rng, clock=clock)
        self.ritual_engine = RitualEngine(store, rng=self.rng, clock=clock)
        self.disagreement_engine = DisagreementEngine(rng=self.rng)
        self.quiet_tracker = QuietTracker(store, clock=clock)

        self.coordinator = StreamingCoordinator(
            client,
            store,
            self.quiet_tracker,
            self.session,
            observer_id=self.config.part_intelligence.quiet_observer_id,
        )

        self._generation_task: Optional[asyncio.Task] = None
        self._disagreement_task: Optional[asyncio.Task] = None
        self._background: set[asyncio.Task] = set()
        self._cancel_requested = False

        logger.info("PartOrchestrator initialized")

    # ── Session lifecycle ───────────────────────────────────────────────────

    async def start_session(self, entry_id: str) -> None:
        """Reset per-session state and load personas, memories and the memory cache"""
        self._cancel_disagreement()
        self.session.reset(entry_id)
        self.echo_engine.reset()

        self.personas = await self.store.list_personas()
        for persona in self.personas:
            persona.memories = await self.store.get_memories(persona.id)

        await self.quiet_tracker.mark_newly_quiet(self.personas, self.config)
        self.memory_cache.invalidate()
        await self.memory_cache.ensure_loaded()

        logger.info(f"Session started for entry {entry_id} with {len(self.personas)} personas")

    def update_config(self, config: Optional[GlobalConfig]) -> None:
        """Swap in a new snapshot; None means every gated feature is off"""
        self.config = config or DEFAULT_CONFIG
        self.coordinator.observer_id = self.config.part_intelligence.quiet_observer_id

    def set_intention(self, intention: Optional[str]) -> None:
        self.session.intention = intention.strip() if intention and intention.strip() else None

    def set_flow_seconds(self, seconds: float) -> None:
        """Host-reported length of the current uninterrupted writing streak"""
        self.session.flow_seconds = max(0.0, seconds)

    @property
    def is_generating(self) -> bool:
        return self.session.is_generating

    def cancel_generation(self) -> bool:
        """Abort the in-flight generation, if any; nothing partial is persisted"""
        if self._generation_task and not self._generation_task.done():
            self._cancel_requested = True
            self._generation_task.cancel()
            return True
        return False

    async def close(self) -> None:
        """Cancel timers and outstanding tasks"""
        pending = [t for t in (self._generation_task, self._disagreement_task, *self._background) if t]
        self.cancel_generation()
        self._cancel_disagreement()
        for task in self._background:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self.grounding.close()
        logger.info("PartOrchestrator closed")

    # ── Pause handling ──────────────────────────────────────────────────────

    async def handle_pause(self, event: PauseEvent) -> Optional[PartThought]:
        """
        Run one orchestration cycle for a pause event.

        Returns:
            The persisted thought, or None when nobody spoke this cycle
        """
        config = self.config
        if not config.features.parts_enabled:
            return None

        # Crisis check runs on every event, busy or short
        label = match_crisis_pattern(event.recent_text)
        if label:
            logger.warning(f"Crisis language detected ({label})")
            self.grounding.activate("crisis_keywords", config)

        if self.session.is_generating:
            logger.debug(f"Dropping {event.type.value} pause: generation in flight")
            return None
        if len(event.current_text.strip()) < settings.MIN_TEXT_LENGTH:
            return None

        # Claimed before the first await so overlapping events see it
        self.session.is_generating = True
        try:
            return await self._run_cycle(event, config)
        finally:
            self.session.is_generating = False

    async def _run_cycle(self, event: PauseEvent, config: GlobalConfig) -> Optional[PartThought]:
        """Selection and generation for one event; the caller holds the generation lock"""
        self._maybe_refresh_emotion(event.current_text, config)

        if not self.grounding.active:
            echo = await self.echo_engine.find_echo(event.current_text, config)
            if echo:
                self.callbacks.on_echo(echo)
                return None

        if self._should_stay_silent(config):
            persona = self.rng.choice(self.personas)
            logger.debug(f"Silence as response from {persona.id}")
            self.callbacks.on_silence(persona.id, persona.name, persona.color, persona.color_light)
            return None

        context, enrichment = await self._gather(event, config)

        scored = self.scorer.select(self.personas, event, context)
        if scored is None:
            return None
        persona = scored.persona
        logger.debug(f"Selected {persona.id} ({scored.score:.1f})")

        messages = build_part_messages(
            persona,
            event.current_text,
            event.recent_text,
            memories=persona.memories,
            profile=self.memory_cache.profile,
            summaries=self.memory_cache.summaries,
            config=config,
            enrichment=enrichment,
        )
        request = GenerationRequest(
            persona=persona,
            messages=messages,
            anchor_text=event.recent_text,
            anchor_offset=event.cursor_position,
            writer_text=event.current_text[: event.cursor_position] if event.cursor_position else event.current_text,
            annotations_enabled=config.features.annotations,
        )

        self._cancel_disagreement()
        thought = await self._generate(request, self._thought_hooks())
        if thought:
            self._maybe_schedule_disagreement(persona, thought, event, config)
        return thought

    def _should_stay_silent(self, config: GlobalConfig) -> bool:
        if not config.features.silence_as_response or not self.personas:
            return False
        intelligence = config.part_intelligence
        if self.session.flow_seconds < intelligence.silence_flow_threshold:
            return False
        return self.rng.random() < intelligence.silence_chance

    async def _gather(self, event: PauseEvent, config: GlobalConfig) -> tuple[ScoringContext, PromptEnrichment]:
        """Run the engine lookups concurrently; all finish before scoring"""
        await self.memory_cache.ensure_loaded()
        grounding_active = self.grounding.active
        observer_id = config.part_intelligence.quiet_observer_id

        async def no_result():
            return None

        async def observer_marker():
            if not config.features.quiet_observer:
                return None
            try:
                return await self.quiet_tracker.get_observer_last_entry(observer_id)
            except Exception as e:
                logger.error(f"Observer marker read failed: {e}")
                return None

        # Past passages and old threads stay out of prompts while grounding
        quote_lookup = no_result() if grounding_active else self.quote_engine.find_quote(event.current_text, config)
        thread_lookup = (
            no_result() if grounding_active
            else self.thread_engine.find_unfinished_thread(event.current_text, config)
        )
        quote, thread, rituals, last_entry = await asyncio.gather(
            quote_lookup,
            thread_lookup,
            self.ritual_engine.detect_rituals(config),
            observer_marker(),
        )

        profile = self.memory_cache.profile
        avoidance = frozenset(
            word
            for pattern in (profile.avoidance_patterns if profile else [])
            for word in extract_words(pattern)
        )
        context = ScoringContext(
            session=self.session,
            config=config,
            grounding_active=grounding_active,
            quiet_ids=frozenset(p.id for p in self.quiet_tracker.get_quiet_parts(self.personas, config)),
            observer_entries_since=entries_since(last_entry, self.session.entry_id, self.memory_cache.summaries),
            avoidance_words=avoidance,
        )
        enrichment = PromptEnrichment(
            quote=quote,
            thread=thread,
            rituals=rituals or [],
            intention=self.session.intention if config.features.intentions_enabled else None,
            grounding=grounding_active,
            annotations=config.features.annotations,
        )
        return context, enrichment

    async def _generate(self, request: GenerationRequest, hooks: StreamHooks) -> Optional[PartThought]:
        """One cancellable coordinator run; the caller holds the generation lock"""
        self._cancel_requested = False
        self._generation_task = asyncio.create_task(self.coordinator.run(request, hooks))
        try:
            return await self._generation_task
        except asyncio.CancelledError:
            if not self._cancel_requested:
                raise
            logger.info("Generation cancelled by host")
            return None
        except Exception as e:
            logger.error(f"Generation cycle failed after streaming: {e}")
            hooks.on_error(e)
            return None
        finally:
            self._generation_task = None
            self._cancel_requested = False

    def _thought_hooks(self) -> StreamHooks:
        callbacks = self.callbacks
        return StreamHooks(
            on_start=lambda p: callbacks.on_thought_start(p.id, p.name, p.color),
            on_token=callbacks.on_thought_token,
            on_complete=callbacks.on_thought_complete,
            on_error=callbacks.on_error,
            on_annotations=callbacks.on_annotations,
        )

    # ── Emotion refresh ─────────────────────────────────────────────────────

    def _maybe_refresh_emotion(self, text: str, config: GlobalConfig) -> None:
        if self.distress is None or not self.distress.is_due():
            return
        task = asyncio.create_task(self._refresh_emotion(text, config))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _refresh_emotion(self, text: str, config: GlobalConfig) -> None:
        reading = await self.distress.check(text, config)
        if reading is None:
            return
        tag = reading.tag
        if tag is None:
            logger.debug(f"Ignoring unrecognized emotion {reading.emotion!r}")
            return
        self.session.current_emotion = tag
        self.callbacks.on_emotion_detected(tag)

    # ── Disagreement ────────────────────────────────────────────────────────

    def _maybe_schedule_disagreement(
        self,
        original: Persona,
        thought: PartThought,
        event: PauseEvent,
        config: GlobalConfig,
    ) -> None:
        if self.grounding.active:
            return
        challenger = self.disagreement_engine.should_disagree(original, self.personas, config)
        if challenger is None:
            return
        logger.debug(f"{challenger.id} will push back on {original.id}")
        self._disagreement_task = asyncio.create_task(
            self._run_disagreement(challenger, original, thought, event)
        )

    async def _run_disagreement(
        self,
        challenger: Persona,
        original: Persona,
        thought: PartThought,
        event: PauseEvent,
    ) -> None:
        await asyncio.sleep(self.disagreement_delay)
        if self.session.is_generating or self.grounding.active:
            return

        callbacks = self.callbacks
        hooks = StreamHooks(
            on_start=lambda p: callbacks.on_disagreement_start(p.id, p.name, p.color, original.id),
            on_token=callbacks.on_disagreement_token,
            on_complete=callbacks.on_disagreement_complete,
            on_error=callbacks.on_error,
            on_annotations=callbacks.on_annotations,
        )
        request = GenerationRequest(
            persona=challenger,
            messages=build_disagreement_messages(challenger, thought.content, event.current_text),
            anchor_text=thought.anchor_text,
            anchor_offset=thought.anchor_offset,
            is_disagreement=True,
            responding_to_part_id=original.id,
            max_tokens=settings.DISAGREEMENT_MAX_TOKENS,
        )
        self.session.is_generating = True
        try:
            result = await self._generate(request, hooks)
        finally:
            self.session.is_generating = False
        if result:
            self.disagreement_engine.mark_disagreed()

    def _cancel_disagreement(self) -> None:
        task = self._disagreement_task
        if task and not task.done():
            task.cancel()
            logger.debug("Pending disagreement cancelled")
        self._disagreement_task = None
