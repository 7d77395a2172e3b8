"""Exception hierarchy for the orchestration engine"""

from typing import Optional


class InnerPartsError(Exception):
    """Base class for all engine errors"""


class GenerationError(InnerPartsError):
    """The streaming generation transport failed or timed out"""

    def __init__(self, message: str, part_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.part_id = part_id


class StoreError(InnerPartsError):
    """Persistence layer failure (not connected, bad row, write failed)"""


class ConfigError(InnerPartsError):
    """A config snapshot could not be interpreted"""
