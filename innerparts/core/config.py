"""Configuration management using Pydantic Settings"""

from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Process-level settings with environment variable support"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Paths
    PROJECT_ROOT: Path = Path(__file__).parent.parent.parent
    DB_PATH: Path = PROJECT_ROOT / "data" / "innerparts.db"

    # Generation
    DEFAULT_MAX_TOKENS: int = 150
    DISAGREEMENT_MAX_TOKENS: int = 150

    # Cycle timing (seconds)
    EMOTION_CHECK_INTERVAL_SECONDS: float = 30.0
    DISAGREEMENT_DELAY_SECONDS: float = 2.0

    # Thresholds
    MIN_TEXT_LENGTH: int = 20
    OBSERVATION_MIN_LENGTH: int = 20
    MEMORY_CACHE_SUMMARIES: int = 5


settings = Settings()
