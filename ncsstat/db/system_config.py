"""Admin-editable settings stored in the system_config table."""

import logging
from typing import Any

import psycopg

from .connection import get_db_cursor

logger = logging.getLogger(__name__)

DEFAULT_NCS_BALANCE = 100_000
DEFAULT_REFERRAL_REWARD = 5_000
DEFAULT_FEEDBACK_REWARD = 50


def get_config_value(key: str) -> Any | None:
    """Get the raw (JSON-decoded) value for a config key, or None if unset."""
    with get_db_cursor() as cursor:
        cursor.execute("SELECT value FROM system_config WHERE key = %s", (key,))
        row = cursor.fetchone()
        return row[0] if row else None


def get_int_config(key: str, default: int) -> int:
    """Read an integer setting, falling back to `default` when unavailable.

    A database error here is not fatal: the caller gets the default.
    """
    try:
        value = get_config_value(key)
    except psycopg.Error as e:
        logger.warning(f"Failed to read config {key!r}, using {default}: {e}")
        return default
    if value is None:
        logger.warning(f"Config {key!r} not set, using {default}")
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning(f"Config {key!r} has non-integer value {value!r}, using {default}")
        return default


def get_default_balance() -> int:
    """Starting token balance for new users."""
    return get_int_config("default_ncs_balance", DEFAULT_NCS_BALANCE)


def get_referral_reward() -> int:
    return get_int_config("referral_reward", DEFAULT_REFERRAL_REWARD)


def get_feedback_reward() -> int:
    return get_int_config("feedback_reward", DEFAULT_FEEDBACK_REWARD)
