"""Append-only audit log of user activity."""

import logging
from datetime import datetime, timezone
from typing import Any, Literal
from uuid import UUID

from psycopg.types.json import Jsonb

from .connection import get_db_cursor

ActivityAction = Literal[
    "user_registered",
    "login",
    "logout",
    "researcher_unlock",
    "referral_applied",
]

logger = logging.getLogger(__name__)


def log_activity(
    user_id: UUID, action: ActivityAction, details: dict[str, Any] | None = None
) -> None:
    """Insert an activity row."""
    with get_db_cursor() as cursor:
        cursor.execute(
            """
            INSERT INTO activity_logs (user_id, action, details)
            VALUES (%s, %s, %s)
            """,
            (str(user_id), action, Jsonb(details or {})),
        )


def log_activity_safely(
    user_id: UUID, action: ActivityAction, details: dict[str, Any] | None = None
) -> bool:
    """Insert an activity row, logging instead of raising on failure.

    Audit rows are never allowed to fail the request that produced them.
    """
    try:
        log_activity(user_id, action, details)
        return True
    except Exception as e:
        logger.warning(
            f"Failed to record activity {action} for user {user_id}: "
            f"exception_type={type(e).__name__}, error={e}"
        )
        return False


def log_login(user_id: UUID) -> None:
    log_activity_safely(
        user_id, "login", {"timestamp": datetime.now(timezone.utc).isoformat()}
    )


def log_logout(user_id: UUID, session_started_at: datetime | None = None) -> None:
    duration = 0
    if session_started_at is not None:
        duration = int(
            (datetime.now(timezone.utc) - session_started_at).total_seconds()
        )
    log_activity_safely(user_id, "logout", {"duration_seconds": duration})
