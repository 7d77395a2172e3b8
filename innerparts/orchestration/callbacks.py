"""Callback surface the orchestrator drives on the host UI"""

from dataclasses import dataclass
from typing import Callable, Optional

from innerparts.core.models import Annotation, EchoResult, EmotionTag, PartThought


def _noop(*args, **kwargs) -> None:
    return None


@dataclass
class OrchestratorCallbacks:
    """
    Host hooks, all optional. Every hook is a plain synchronous callable.

    Thought hooks fire for pause-triggered replies; the disagreement hooks fire
    for the delayed follow-up from an opposing persona.
    """

    on_thought_start: Callable[[str, str, str], None] = _noop  # part_id, name, color
    on_thought_token: Callable[[str], None] = _noop
    on_thought_complete: Callable[[PartThought], None] = _noop
    on_emotion_detected: Callable[[EmotionTag], None] = _noop
    on_error: Callable[[Exception], None] = _noop
    on_annotations: Callable[[Annotation, str], None] = _noop  # annotation, color
    on_echo: Callable[[EchoResult], None] = _noop
    on_silence: Callable[[str, str, str, str], None] = _noop  # part_id, name, color, color_light
    on_disagreement_start: Callable[[str, str, str, str], None] = _noop  # part_id, name, color, responding_to
    on_disagreement_token: Callable[[str], None] = _noop
    on_disagreement_complete: Callable[[PartThought], None] = _noop


def coerce_callbacks(callbacks: Optional[OrchestratorCallbacks]) -> OrchestratorCallbacks:
    return callbacks if callbacks is not None else OrchestratorCallbacks()
