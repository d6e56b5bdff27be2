"""Profile model: the application's own record for each end user."""

from __future__ import annotations
from datetime import datetime
from typing import Literal
import re
from uuid import UUID

from pydantic import BaseModel


Role = Literal["user", "researcher", "admin"]

# ORCID iDs are four blocks of four digits, the last character is a
# checksum that may be a literal X.
ORCID_ID_PATTERN = re.compile(r"^\d{4}-\d{4}-\d{4}-\d{3}[\dX]$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_orcid_id(value: str) -> bool:
    return bool(ORCID_ID_PATTERN.match(value))


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_PATTERN.match(value))


class Profile(BaseModel):
    """A user profile row.

    Managed-auth users share their id with the auth backend's user. ORCID-only
    users get a locally generated id when their profile is created.
    """

    id: UUID
    email: str | None = None
    orcid_id: str | None = None
    full_name: str | None = None
    display_name: str | None = None
    avatar_url: str | None = None
    role: Role = "user"
    tokens: int = 0
    total_earned: int = 0
    total_spent: int = 0
    referral_code: str | None = None
    referred_by: str | None = None
    referral_count: int = 0
    provider: str | None = None
    last_active: datetime | None = None
    created_at: datetime | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_researcher(self) -> bool:
        """Researchers and admins both get researcher features."""
        return self.role in ("researcher", "admin")

    @property
    def is_orcid_user(self) -> bool:
        return self.orcid_id is not None
