"""
Environment configuration.

Reads .env (via python-dotenv) and exposes connection settings and the
mastery policy used by the service.
"""

import logging
import os

from dotenv import load_dotenv

from core.policy import MasteryPolicy

# Load environment variables from .env
load_dotenv()


def redis_settings() -> dict:
    """Keyword arguments for redis.Redis()."""
    return {
        "host": os.getenv("REDIS_HOST", "localhost"),
        "port": int(os.getenv("REDIS_PORT", 6379)),
        "password": os.getenv("REDIS_PASSWORD", None),
        "db": int(os.getenv("REDIS_DB", 0)),
        "decode_responses": True,  # Return strings instead of bytes
    }


def key_prefix() -> str:
    return os.getenv("KEY_PREFIX", "mastery")


def log_level() -> int:
    return getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)


def mastery_policy() -> MasteryPolicy:
    """Policy from environment overrides on top of the defaults."""
    defaults = MasteryPolicy()
    return MasteryPolicy(
        half_life_days=float(os.getenv("MASTERY_HALF_LIFE_DAYS", defaults.half_life_days)),
        min_weighted_attempts=int(os.getenv("MASTERY_MIN_WEIGHTED_ATTEMPTS", defaults.min_weighted_attempts)),
        trend_tolerance=float(os.getenv("MASTERY_TREND_TOLERANCE", defaults.trend_tolerance)),
        staleness_days=int(os.getenv("GAP_STALENESS_DAYS", defaults.staleness_days)),
    ).validate()
