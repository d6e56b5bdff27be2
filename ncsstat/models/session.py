"""Identity and session models shared by both login providers."""

from __future__ import annotations
from datetime import datetime, timezone
from enum import Enum
from typing import Literal
from uuid import UUID

from pydantic import BaseModel


AuthSource = Literal["managed", "orcid"]


class AuthEvent(str, Enum):
    """Auth-change notifications emitted by the managed-auth session store."""

    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    SIGNED_OUT = "SIGNED_OUT"


# Events after which a session (possibly for a new user) is present.
SIGN_IN_EVENTS = frozenset(
    {
        AuthEvent.INITIAL_SESSION,
        AuthEvent.SIGNED_IN,
        AuthEvent.TOKEN_REFRESHED,
        AuthEvent.USER_UPDATED,
    }
)


class AuthUser(BaseModel):
    """The user carried by a managed-auth session."""

    id: UUID
    email: str | None = None
    provider: str | None = None
    full_name: str | None = None


class AuthSession(BaseModel):
    """An opaque managed-auth session as seen by this service."""

    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None
    user: AuthUser

    def is_expired(self) -> bool:
        if self.expires_at is None:
            return False
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at <= datetime.now(timezone.utc)

    def expires_at_iso(self) -> str | None:
        if self.expires_at is None:
            return None
        return self.expires_at.isoformat()


class CurrentUser(BaseModel):
    """The resolved "current user", whichever provider it came from.

    ORCID pseudo-sessions have no managed-auth user, so for them this is
    synthesized from the profile row.
    """

    id: UUID
    email: str | None = None
    source: AuthSource

    @classmethod
    def from_auth_user(cls, user: AuthUser) -> "CurrentUser":
        return cls(id=user.id, email=user.email, source="managed")


class SessionSummary(BaseModel):
    """Public view of a managed-auth session, safe to return to the browser."""

    user: str | None
    expires_at: str | None
    provider: str | None = None

    @classmethod
    def from_session(cls, session: AuthSession) -> "SessionSummary":
        return cls(
            user=session.user.email,
            expires_at=session.expires_at_iso(),
            provider=session.user.provider,
        )
