"""Interfaces for the language-model collaborators the engine consumes"""

from typing import AsyncIterator, Literal, Protocol, TypedDict, runtime_checkable

from innerparts.core.models import EmotionReading


class ChatMessage(TypedDict):
    role: Literal["system", "user", "assistant"]
    content: str


@runtime_checkable
class GenerationClient(Protocol):
    """
    Streaming completion transport.

    ``stream`` yields text tokens in order and finishes when the completion
    is done. Transport failures (HTTP errors, timeouts) are raised from the
    iterator; retries are the transport's business.
    """

    def stream(self, messages: list[ChatMessage], max_tokens: int) -> AsyncIterator[str]:
        ...


@runtime_checkable
class EmotionClassifier(Protocol):
    """Non-streaming emotion and distress classification of recent text"""

    async def classify(self, text: str) -> EmotionReading:
        ...
