"""Language-model collaborator interfaces"""

from innerparts.llm.base import ChatMessage, EmotionClassifier, GenerationClient

__all__ = ["ChatMessage", "EmotionClassifier", "GenerationClient"]
