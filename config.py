"""
Runtime configuration.

Values come from the environment (optionally seeded from a `.env` file in
the working directory) and are read once at import time. A value that does
not parse falls back to its default and is reported by `validate_config`.
"""

import os

from dotenv import load_dotenv

load_dotenv()

_PARSE_ISSUES: list[str] = []


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw)
    except ValueError:
        _PARSE_ISSUES.append(f"{name} must be a number, got {raw!r}")
        return default


# Database
DB_PATH = os.getenv("INVENTORY_DB_PATH", "lab_inventory.db")
DB_TIMEOUT_SEC = _env_number("INVENTORY_DB_TIMEOUT_SEC", 5.0, float)

# Logging
LOG_LEVEL = os.getenv("INVENTORY_LOG_LEVEL", "INFO").upper()

# Catalog behaviour
LOW_STOCK_THRESHOLD = _env_number("INVENTORY_LOW_STOCK_THRESHOLD", 5, int)
DEFAULT_CATEGORY = os.getenv("INVENTORY_DEFAULT_CATEGORY", "General")


def get_db_path() -> str:
    """Database path, re-read so tests and the CLI can override it per process."""
    return os.getenv("INVENTORY_DB_PATH", DB_PATH)


def get_log_level() -> str:
    return os.getenv("INVENTORY_LOG_LEVEL", LOG_LEVEL).upper()


def validate_config() -> list[str]:
    """Validate configuration and return any issues."""
    issues = list(_PARSE_ISSUES)

    if DB_TIMEOUT_SEC <= 0:
        issues.append("INVENTORY_DB_TIMEOUT_SEC must be > 0")

    if LOW_STOCK_THRESHOLD < 0:
        issues.append("INVENTORY_LOW_STOCK_THRESHOLD must be >= 0")

    if not DEFAULT_CATEGORY.strip():
        issues.append("INVENTORY_DEFAULT_CATEGORY must be non-empty")

    if LOG_LEVEL not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        issues.append(f"Invalid INVENTORY_LOG_LEVEL: {LOG_LEVEL}")

    return issues
