"""
Centralized configuration management for the procurement simulator.
Loads settings from environment variables and provides defaults.
"""

import os
import random
from pathlib import Path
from typing import Optional, Dict, Any
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Settings:
    """Application settings loaded from environment variables."""

    # Round scheduling
    DEFAULT_MAX_ROUNDS: Optional[int] = (
        int(os.environ["DEFAULT_MAX_ROUNDS"]) if os.getenv("DEFAULT_MAX_ROUNDS") else None
    )
    MIN_ROUNDS: int = int(os.getenv("MIN_ROUNDS", 3))
    ROUND_JITTER: int = int(os.getenv("ROUND_JITTER", 1))

    # Impasse detection
    IMPASSE_MAX_ROUNDS: int = int(os.getenv("IMPASSE_MAX_ROUNDS", 10))
    IMPASSE_PROGRESS_WINDOW: int = int(os.getenv("IMPASSE_PROGRESS_WINDOW", 3))
    IMPASSE_PRICE_GAP_THRESHOLD: float = float(os.getenv("IMPASSE_PRICE_GAP_THRESHOLD", 0.25))
    IMPASSE_MAX_LEAD_TIME: int = int(os.getenv("IMPASSE_MAX_LEAD_TIME", 60))
    STALL_TOLERANCE_PERCENT: float = float(os.getenv("STALL_TOLERANCE_PERCENT", 1.0))
    TERMINATE_ON_IMPASSE: bool = _env_bool("TERMINATE_ON_IMPASSE", "false")

    # Monitoring & Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE: str = os.getenv("LOG_FILE", "procurement_sim.log")

    # Storage
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./procurement_sim.db")
    OUTPUT_DIR: Path = Path(os.getenv("OUTPUT_DIR", "./outputs"))

    # Development/Production
    DEBUG: bool = _env_bool("DEBUG", "false")
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    def __init__(self):
        """Initialize settings and validate them."""
        self._validate_settings()

    def _validate_settings(self):
        """Validate critical settings."""
        if self.MIN_ROUNDS < 1:
            raise ValueError("MIN_ROUNDS must be at least 1")
        if self.ROUND_JITTER < 0:
            raise ValueError("ROUND_JITTER must not be negative")
        if self.DEFAULT_MAX_ROUNDS is not None and self.DEFAULT_MAX_ROUNDS < 1:
            raise ValueError("DEFAULT_MAX_ROUNDS must be at least 1")
        if self.IMPASSE_MAX_ROUNDS < 1 or self.IMPASSE_PROGRESS_WINDOW < 1:
            raise ValueError("Impasse round settings must be positive")
        if self.IMPASSE_PRICE_GAP_THRESHOLD <= 0:
            raise ValueError("IMPASSE_PRICE_GAP_THRESHOLD must be greater than 0")
        if self.ENVIRONMENT == "production" and self.DEBUG:
            raise ValueError("DEBUG must be False in production")

    def to_dict(self) -> Dict[str, Any]:
        """Convert settings to dictionary."""
        return {
            key: getattr(self, key)
            for key in dir(self)
            if key.isupper() and not key.startswith("_")
        }

    def resolve_max_rounds(self, rng: Optional[random.Random] = None) -> int:
        """Pick the round budget for a negotiation that does not fix one.

        ``DEFAULT_MAX_ROUNDS`` wins when set; otherwise the budget is
        ``MIN_ROUNDS`` plus up to ``ROUND_JITTER`` extra rounds drawn from
        ``rng``. Pass a seeded generator to keep runs reproducible.
        """
        if self.DEFAULT_MAX_ROUNDS is not None:
            return self.DEFAULT_MAX_ROUNDS
        rng = rng or random.Random()
        return self.MIN_ROUNDS + rng.randint(0, self.ROUND_JITTER)

    def get_impasse_settings(self) -> Dict[str, Any]:
        """Keyword arguments for :class:`procurement_sim.impasse.ImpasseConfig`."""
        return {
            "max_rounds": self.IMPASSE_MAX_ROUNDS,
            "progress_window_size": self.IMPASSE_PROGRESS_WINDOW,
            "price_gap_threshold": self.IMPASSE_PRICE_GAP_THRESHOLD,
            "max_acceptable_lead_time": self.IMPASSE_MAX_LEAD_TIME,
        }

    def get_logging_config(self, level: Optional[str] = None) -> dict:
        """Get logging configuration."""
        return {
            'version': 1,
            'disable_existing_loggers': False,
            'formatters': {
                'default': {
                    'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                },
                'json': {
                    'class': 'pythonjsonlogger.jsonlogger.JsonFormatter',
                    'format': '%(asctime)s %(name)s %(levelname)s %(message)s'
                }
            },
            'handlers': {
                'file': {
                    'class': 'logging.handlers.RotatingFileHandler',
                    'filename': self.LOG_FILE,
                    'maxBytes': 10485760,  # 10MB
                    'backupCount': 5,
                    'formatter': 'json' if self.ENVIRONMENT == 'production' else 'default',
                },
                'console': {
                    'class': 'logging.StreamHandler',
                    'formatter': 'default',
                },
            },
            'root': {
                'level': level or self.LOG_LEVEL,
                'handlers': ['file', 'console'],
            },
        }

# Singleton instance
settings = Settings()

# Convenience functions
def get_settings() -> Settings:
    """Get settings instance."""
    return settings

def is_production() -> bool:
    """Check if running in production."""
    return settings.ENVIRONMENT == "production"

def is_debug() -> bool:
    """Check if debug mode is enabled."""
    return settings.DEBUG
