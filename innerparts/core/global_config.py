"""
Immutable per-cycle snapshot of the host's feature flags and tuning weights.

The host supplies a mapping (typically the camelCase document its admin
tooling edits). Every field has a default, and every feature flag defaults to
off, so a missing or empty snapshot means "feature disabled" everywhere.
"""

from typing import Any, Mapping, Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from innerparts.core.errors import ConfigError


class _Section(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class FeatureFlags(_Section):
    parts_enabled: bool = False
    parts_quoting: bool = False
    parts_disagreeing: bool = False
    part_quiet_return: bool = False
    part_catchphrases: bool = False
    silence_as_response: bool = False
    echoes: bool = False
    rituals_not_streaks: bool = False
    unfinished_threads: bool = False
    emergency_grounding: bool = False
    intentions_enabled: bool = False
    quiet_observer: bool = False
    annotations: bool = False


class PartIntelligence(_Section):
    quote_min_age: float = 3            # days
    quote_chance: float = 0.15
    disagree_chance: float = 0.1
    disagree_min_parts: int = 3
    quiet_threshold_days: float = 5
    return_bonus_multiplier: float = 2.0
    catchphrase_max_per_part: int = 3
    silence_flow_threshold: float = 60  # seconds of unbroken flow
    silence_chance: float = 0.15
    quiet_observer_id: str = "watcher"


class Engagement(_Section):
    echo_max_age: float = 90            # days
    echo_chance: float = 0.1
    echo_max_per_session: int = 3
    ritual_detection_window: float = 14  # days
    thread_max_age: float = 30          # days
    thread_chance: float = 0.15


class GroundingConfig(_Section):
    auto_exit_minutes: float = 5
    self_role_score_bonus: float = 40
    other_role_penalty: float = 30
    intensity_threshold: int = 3


class GlobalConfig(_Section):
    """Feature flags plus the numeric weights the engines read"""

    features: FeatureFlags = FeatureFlags()
    part_intelligence: PartIntelligence = PartIntelligence()
    engagement: Engagement = Engagement()
    grounding: GroundingConfig = GroundingConfig()

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "GlobalConfig":
        """
        Build a snapshot from a raw host mapping.

        Null sections are treated as absent so their defaults apply.

        Raises:
            ConfigError: if a present value has the wrong shape
        """
        if not data:
            return cls()
        cleaned = _drop_nulls(data)
        try:
            return cls.model_validate(cleaned)
        except ValidationError as e:
            logger.error(f"Invalid global config snapshot: {e}")
            raise ConfigError(str(e)) from e


def _drop_nulls(data: Mapping[str, Any]) -> dict[str, Any]:
    cleaned: dict[str, Any] = {}
    for key, value in data.items():
        if value is None:
            continue
        if isinstance(value, Mapping):
            value = _drop_nulls(value)
        cleaned[key] = value
    return cleaned


DEFAULT_CONFIG = GlobalConfig()
