"""Database operations for user profiles."""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from ncsstat.models.profile import Profile, Role
from .connection import get_db_cursor

logger = logging.getLogger(__name__)

PROFILE_COLUMNS = """
    id, email, orcid_id, full_name, display_name, avatar_url, role,
    tokens, total_earned, total_spent, referral_code, referred_by,
    referral_count, provider, last_active, created_at
"""


def get_profile_by_id(profile_id: UUID) -> Optional[Profile]:
    """Get a profile by its id."""
    with get_db_cursor() as cursor:
        cursor.execute(
            f"SELECT {PROFILE_COLUMNS} FROM profiles WHERE id = %s",
            (str(profile_id),),
        )
        row = cursor.fetchone()
        return _row_to_profile(row) if row else None


def get_profile_by_email(email: str) -> Optional[Profile]:
    """Get the oldest profile registered with this email (case-insensitive)."""
    with get_db_cursor() as cursor:
        cursor.execute(
            f"""
            SELECT {PROFILE_COLUMNS} FROM profiles
            WHERE lower(email) = lower(%s)
            ORDER BY created_at
            LIMIT 1
            """,
            (email,),
        )
        row = cursor.fetchone()
        return _row_to_profile(row) if row else None


def get_profile_by_orcid(orcid_id: str) -> Optional[Profile]:
    """Get a profile by ORCID iD."""
    with get_db_cursor() as cursor:
        cursor.execute(
            f"SELECT {PROFILE_COLUMNS} FROM profiles WHERE orcid_id = %s",
            (orcid_id,),
        )
        row = cursor.fetchone()
        return _row_to_profile(row) if row else None


def get_profile_by_referral_code(referral_code: str) -> Optional[Profile]:
    with get_db_cursor() as cursor:
        cursor.execute(
            f"SELECT {PROFILE_COLUMNS} FROM profiles WHERE referral_code = %s",
            (referral_code.upper(),),
        )
        row = cursor.fetchone()
        return _row_to_profile(row) if row else None


def touch_last_active(profile_id: UUID) -> None:
    """Record that the user was just seen."""
    with get_db_cursor() as cursor:
        cursor.execute(
            "UPDATE profiles SET last_active = NOW() WHERE id = %s",
            (str(profile_id),),
        )


def attach_orcid(
    profile_id: UUID, orcid_id: str, full_name: Optional[str]
) -> Optional[Profile]:
    """Link an ORCID iD to an existing profile.

    The stored full name is only replaced when a non-empty one is supplied.

    Returns:
        The updated Profile, or None if the profile does not exist.
    """
    with get_db_cursor() as cursor:
        cursor.execute(
            f"""
            UPDATE profiles
            SET orcid_id = %s,
                full_name = COALESCE(NULLIF(%s, ''), full_name),
                last_active = NOW()
            WHERE id = %s
            RETURNING {PROFILE_COLUMNS}
            """,
            (orcid_id, full_name, str(profile_id)),
        )
        row = cursor.fetchone()
    if row is None:
        return None
    logger.info(f"Attached ORCID {orcid_id} to profile {profile_id}")
    return _row_to_profile(row)


def create_orcid_profile(
    profile_id: UUID,
    orcid_id: str,
    email: str,
    name: Optional[str],
    tokens: int,
) -> tuple[Profile, bool]:
    """Create a profile for an ORCID-only user.

    A concurrent registration of the same ORCID iD does not create a second
    row: the existing row is touched and returned instead.

    Returns:
        The profile and whether it was newly inserted.
    """
    with get_db_cursor() as cursor:
        cursor.execute(
            f"""
            INSERT INTO profiles
                (id, orcid_id, email, full_name, display_name, tokens,
                 provider, last_active)
            VALUES (%s, %s, %s, %s, %s, %s, 'orcid', NOW())
            ON CONFLICT (orcid_id)
            DO UPDATE SET last_active = NOW()
            RETURNING {PROFILE_COLUMNS}, (xmax = 0) AS inserted
            """,
            (str(profile_id), orcid_id, email, name, name, tokens),
        )
        row = cursor.fetchone()
    profile = _row_to_profile(row[:-1])
    inserted = bool(row[-1])
    if inserted:
        logger.info(f"Created ORCID profile id={profile.id} for orcid={orcid_id}")
    else:
        logger.info(f"ORCID {orcid_id} already registered as profile {profile.id}")
    return profile, inserted


def set_role(
    profile_id: UUID, role: Role, unlocked_at: Optional[datetime] = None
) -> None:
    with get_db_cursor() as cursor:
        cursor.execute(
            """
            UPDATE profiles
            SET role = %s,
                researcher_unlocked_at = COALESCE(%s, researcher_unlocked_at)
            WHERE id = %s
            """,
            (role, unlocked_at, str(profile_id)),
        )


def set_referral_code(profile_id: UUID, referral_code: str) -> str:
    """Store a referral code unless the profile already has one.

    Returns:
        The code now on the profile.
    """
    with get_db_cursor() as cursor:
        cursor.execute(
            """
            UPDATE profiles
            SET referral_code = COALESCE(referral_code, %s)
            WHERE id = %s
            RETURNING referral_code
            """,
            (referral_code, str(profile_id)),
        )
        row = cursor.fetchone()
    if row is None:
        raise LookupError(f"Profile {profile_id} not found")
    return row[0]


def _row_to_profile(row) -> Profile:
    """Convert a database row to a Profile object."""
    (
        id,
        email,
        orcid_id,
        full_name,
        display_name,
        avatar_url,
        role,
        tokens,
        total_earned,
        total_spent,
        referral_code,
        referred_by,
        referral_count,
        provider,
        last_active,
        created_at,
    ) = row
    return Profile(
        id=id,
        email=email,
        orcid_id=orcid_id,
        full_name=full_name,
        display_name=display_name,
        avatar_url=avatar_url,
        role=role,
        tokens=tokens or 0,
        total_earned=total_earned or 0,
        total_spent=total_spent or 0,
        referral_code=referral_code,
        referred_by=referred_by,
        referral_count=referral_count or 0,
        provider=provider,
        last_active=last_active,
        created_at=created_at,
    )
