"""Persona selection, streaming generation and the per-session cycle driver"""

from innerparts.orchestration.annotations import AnnotationDemuxer, fix_ghost_capitalization, parse_annotations
from innerparts.orchestration.callbacks import OrchestratorCallbacks
from innerparts.orchestration.orchestrator import PartOrchestrator
from innerparts.orchestration.prompts import build_disagreement_messages, build_part_messages, seed_personas
from innerparts.orchestration.scorer import HeuristicScorer, ScoringContext
from innerparts.orchestration.session import RecentSpeakers, SessionMemoryCache, SessionState
from innerparts.orchestration.streaming import GenerationRequest, StreamHooks, StreamingCoordinator

__all__ = [
    "AnnotationDemuxer",
    "fix_ghost_capitalization",
    "parse_annotations",
    "OrchestratorCallbacks",
    "PartOrchestrator",
    "build_disagreement_messages",
    "build_part_messages",
    "seed_personas",
    "HeuristicScorer",
    "ScoringContext",
    "RecentSpeakers",
    "SessionMemoryCache",
    "SessionState",
    "GenerationRequest",
    "StreamHooks",
    "StreamingCoordinator",
]
