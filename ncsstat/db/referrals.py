"""Referral codes and the referral reward flow."""

import logging
import secrets
import string
from dataclasses import dataclass
from uuid import UUID

from .connection import get_db_connection
from .ledger import credit_with_cursor
from .profiles import get_profile_by_id, set_referral_code

logger = logging.getLogger(__name__)

REFERRAL_CODE_PREFIX = "NCS-"
_CODE_ALPHABET = string.ascii_uppercase + string.digits


@dataclass
class ReferralResult:
    success: bool
    error: str | None = None
    referrer_id: UUID | None = None
    reward: int = 0


def generate_referral_code() -> str:
    return REFERRAL_CODE_PREFIX + "".join(
        secrets.choice(_CODE_ALPHABET) for _ in range(8)
    )


def get_or_create_referral_code(user_id: UUID) -> str:
    """Return the user's referral code, generating one on first use."""
    profile = get_profile_by_id(user_id)
    if profile is None:
        raise LookupError(f"Profile {user_id} not found")
    if profile.referral_code:
        return profile.referral_code
    return set_referral_code(user_id, generate_referral_code())


def apply_referral_code(user_id: UUID, referral_code: str, reward: int) -> ReferralResult:
    """Record that `user_id` was referred and reward both sides.

    A profile can be referred only once; the guard is the conditional
    UPDATE on `referred_by`, so two concurrent applications credit at most
    once. All writes share one transaction, and an early return has
    written nothing.
    """
    code = referral_code.strip().upper()

    with get_db_connection() as conn, conn.transaction(), conn.cursor() as cursor:
        cursor.execute("SELECT id FROM profiles WHERE referral_code = %s", (code,))
        referrer = cursor.fetchone()
        if referrer is None:
            return ReferralResult(success=False, error="Invalid referral code")
        referrer_id = UUID(str(referrer[0]))

        if referrer_id == user_id:
            return ReferralResult(success=False, error="You cannot use your own code")

        cursor.execute(
            """
            UPDATE profiles SET referred_by = %s
            WHERE id = %s AND referred_by IS NULL
            RETURNING id
            """,
            (code, str(user_id)),
        )
        if cursor.fetchone() is None:
            return ReferralResult(
                success=False, error="A referral code has already been applied"
            )

        cursor.execute(
            "UPDATE profiles SET referral_count = referral_count + 1 WHERE id = %s",
            (str(referrer_id),),
        )
        credit_with_cursor(
            cursor, user_id, reward, "referral_bonus", "Sign-up referral bonus"
        )
        credit_with_cursor(
            cursor, referrer_id, reward, "referral_reward", "Referred a new user"
        )

    logger.info(f"User {user_id} referred by {referrer_id} ({code}), reward={reward}")
    return ReferralResult(success=True, referrer_id=referrer_id, reward=reward)
