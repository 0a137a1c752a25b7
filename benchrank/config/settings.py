"""
Global configuration settings for BenchRank.

Loads configuration from environment variables (and a `.env` file when
present) and provides typed access to all system settings.
"""

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from benchrank.core import constants
from benchrank.config.params import (
    ComputationParams,
    EloParams,
    MatchSource,
    RankingParams,
    TrustParams,
)

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Global settings for BenchRank."""

    # Storage
    storage_backend: str = "memory"        # "memory" or "mongodb"
    mongodb_uri: str = ""
    db_name: str = "benchrank"

    # ELO
    elo_k_factor: float = constants.ELO_K_FACTOR
    elo_default_rating: float = constants.ELO_DEFAULT_RATING

    # Orchestration
    run_lock_stale_seconds: float = constants.LOCK_STALE_SECONDS
    max_skip_ratio: float = constants.MAX_SKIP_RATIO
    epoch_retention: int = constants.EPOCH_RETENTION
    match_source: str = MatchSource.RECORDED.value
    parallel_computation: bool = True

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    def __post_init__(self):
        """Load settings from environment variables."""
        self.storage_backend = os.getenv("BENCHRANK_STORAGE", self.storage_backend)
        self.mongodb_uri = os.getenv("MONGODB_URI", self.mongodb_uri)
        self.db_name = os.getenv("BENCHRANK_DB_NAME", self.db_name)
        self.log_level = os.getenv("LOG_LEVEL", self.log_level)
        self.match_source = os.getenv("MATCH_SOURCE", self.match_source)
        self.parallel_computation = _env_bool("PARALLEL_COMPUTATION", self.parallel_computation)

        if os.getenv("ELO_K_FACTOR"):
            self.elo_k_factor = float(os.getenv("ELO_K_FACTOR"))
        if os.getenv("ELO_DEFAULT_RATING"):
            self.elo_default_rating = float(os.getenv("ELO_DEFAULT_RATING"))
        if os.getenv("RUN_LOCK_STALE_SECONDS"):
            self.run_lock_stale_seconds = float(os.getenv("RUN_LOCK_STALE_SECONDS"))
        if os.getenv("MAX_SKIP_RATIO"):
            self.max_skip_ratio = float(os.getenv("MAX_SKIP_RATIO"))
        if os.getenv("EPOCH_RETENTION"):
            self.epoch_retention = int(os.getenv("EPOCH_RETENTION"))

    def ranking_params(self, trust: Optional[TrustParams] = None) -> RankingParams:
        """Build the validated parameter bundle for a computation run."""
        return RankingParams(
            elo=EloParams(
                k_factor=self.elo_k_factor,
                default_rating=self.elo_default_rating,
            ),
            trust=trust or TrustParams(),
            computation=ComputationParams(
                max_skip_ratio=self.max_skip_ratio,
                lock_stale_seconds=self.run_lock_stale_seconds,
                parallel=self.parallel_computation,
                match_source=MatchSource(self.match_source),
                epoch_retention=self.epoch_retention,
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (connection URI masked)."""
        return {
            "storage_backend": self.storage_backend,
            "mongodb_uri": "***" if self.mongodb_uri else "",
            "db_name": self.db_name,
            "elo_k_factor": self.elo_k_factor,
            "elo_default_rating": self.elo_default_rating,
            "run_lock_stale_seconds": self.run_lock_stale_seconds,
            "max_skip_ratio": self.max_skip_ratio,
            "epoch_retention": self.epoch_retention,
            "match_source": self.match_source,
            "parallel_computation": self.parallel_computation,
            "log_level": self.log_level,
        }


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached instance so the next call re-reads the environment."""
    global _settings
    _settings = None


def configure(**kwargs) -> Settings:
    """
    Override global settings.

    Unknown keys are ignored.

    Returns:
        Configured Settings instance
    """
    settings = get_settings()
    for key, value in kwargs.items():
        if hasattr(settings, key):
            setattr(settings, key, value)
    return settings
