"""
Application configuration loaded from environment variables.
"""
import logging
import os
from pathlib import Path
from typing import List


def _parse_int(val: str | None, default: int) -> int:
    """Parse an integer from string, return default if invalid."""
    if not val:
        return default
    try:
        return int(val)
    except ValueError:
        return default


def _parse_int_list(val: str | None, default: List[int]) -> List[int]:
    """Parse a comma-separated list of integers."""
    if not val:
        return default
    try:
        return [int(x.strip()) for x in val.split(",") if x.strip()]
    except ValueError:
        return default


def _parse_log_level(val: str | None, default: int) -> int:
    """Map a level name like DEBUG or warning to its numeric value."""
    if not val:
        return default
    level = logging.getLevelName(val.strip().upper())
    return level if isinstance(level, int) else default


# Storage
DB_PATH = Path("data") / "planner.db"
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DB_PATH}")

# Logging
LOG_LEVEL = _parse_log_level(os.getenv("PLANNER_LOG_LEVEL"), logging.INFO)
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Recurrence defaults
DEFAULT_INTERVAL = max(1, _parse_int(os.getenv("PLANNER_DEFAULT_INTERVAL"), 1))

# Reminder offsets (minutes before an occurrence) applied to new tasks
DEFAULT_REMINDER_MINUTES = _parse_int_list(os.getenv("PLANNER_REMINDER_MINUTES"), [])

# Validation limits
MAX_NAME_LENGTH = _parse_int(os.getenv("PLANNER_MAX_NAME_LENGTH"), 200)
