"""Cookie jar for one request/response cycle.

Reads come from the incoming request; writes and deletes are recorded and
applied onto the outgoing response with `apply()`. Reads observe pending
writes, so code later in the same request sees the new state.
"""

from __future__ import annotations
import json
import logging
import re
from dataclasses import dataclass
from typing import Literal, Mapping, TypeVar
from uuid import UUID

from starlette.requests import Request, cookie_parser
from starlette.responses import Response

logger = logging.getLogger(__name__)

ORCID_USER_COOKIE = "orcid_user"
ORCID_PENDING_COOKIE = "orcid_pending"
ORCID_USER_MAX_AGE = 60 * 60 * 24 * 7  # 1 week
ORCID_PENDING_MAX_AGE = 60 * 10  # 10 minutes

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

SameSite = Literal["lax", "strict", "none"]
ResponseT = TypeVar("ResponseT", bound=Response)


@dataclass
class _CookieWrite:
    value: str | None  # None means delete
    max_age: int | None = None
    path: str = "/"
    httponly: bool = True
    secure: bool = False
    samesite: SameSite = "lax"


@dataclass
class OrcidPending:
    """ORCID identity confirmed but no profile created yet."""

    orcid: str
    name: str | None = None
    email: str | None = None


class CookieStore:
    def __init__(self, cookies: Mapping[str, str] | None = None, secure: bool = False):
        self._cookies = dict(cookies or {})
        self._writes: dict[str, _CookieWrite] = {}
        self.secure = secure

    @classmethod
    def from_request(cls, request: Request, secure: bool = False) -> "CookieStore":
        return cls(request.cookies, secure=secure)

    @classmethod
    def from_header(cls, header: str | None, secure: bool = False) -> "CookieStore":
        """Build a store from a raw Cookie header; junk entries are skipped."""
        return cls(cookie_parser(header) if header else {}, secure=secure)

    def get(self, name: str) -> str | None:
        """Get a cookie value, or None if it is missing or empty."""
        if name in self._writes:
            return self._writes[name].value or None
        return self._cookies.get(name) or None

    def set(
        self,
        name: str,
        value: str,
        max_age: int | None = None,
        path: str = "/",
        httponly: bool = True,
        secure: bool | None = None,
        samesite: SameSite = "lax",
    ) -> None:
        self._writes[name] = _CookieWrite(
            value=value,
            max_age=max_age,
            path=path,
            httponly=httponly,
            secure=self.secure if secure is None else secure,
            samesite=samesite,
        )

    def delete(self, name: str, path: str = "/") -> None:
        self._writes[name] = _CookieWrite(value=None, path=path, secure=self.secure)

    def apply(self, response: ResponseT) -> ResponseT:
        """Write all recorded changes onto `response` as Set-Cookie headers."""
        for name, write in self._writes.items():
            if write.value is None:
                response.delete_cookie(
                    name,
                    path=write.path,
                    secure=write.secure,
                    httponly=write.httponly,
                    samesite=write.samesite,
                )
            else:
                response.set_cookie(
                    name,
                    write.value,
                    max_age=write.max_age,
                    path=write.path,
                    secure=write.secure,
                    httponly=write.httponly,
                    samesite=write.samesite,
                )
        return response

    # ORCID pseudo-session

    def get_orcid_user(self) -> str | None:
        """Get the ORCID pseudo-session profile id.

        A value that is not a UUID is treated as corrupted: the cookie is
        deleted and None is returned.
        """
        value = self.get(ORCID_USER_COOKIE)
        if value is None:
            return None
        if not UUID_PATTERN.match(value):
            logger.warning("Invalid ORCID user id format in cookie, clearing it")
            self.delete(ORCID_USER_COOKIE)
            return None
        return value

    def set_orcid_user(self, profile_id: UUID | str) -> None:
        value = str(profile_id)
        if not UUID_PATTERN.match(value):
            raise ValueError("Invalid ORCID user id format")
        self.set(ORCID_USER_COOKIE, value, max_age=ORCID_USER_MAX_AGE)

    def clear_orcid_user(self) -> None:
        self.delete(ORCID_USER_COOKIE)

    def get_orcid_pending(self) -> OrcidPending | None:
        """Get the pending ORCID registration, clearing it if unreadable."""
        raw = self.get(ORCID_PENDING_COOKIE)
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            return OrcidPending(
                orcid=data["orcid"], name=data.get("name"), email=data.get("email")
            )
        except (ValueError, KeyError, TypeError, AttributeError):
            logger.warning("Unreadable orcid_pending cookie, clearing it")
            self.delete(ORCID_PENDING_COOKIE)
            return None

    def set_orcid_pending(self, pending: OrcidPending) -> None:
        value = json.dumps(
            {"orcid": pending.orcid, "name": pending.name, "email": pending.email}
        )
        self.set(ORCID_PENDING_COOKIE, value, max_age=ORCID_PENDING_MAX_AGE)

    def clear_orcid_pending(self) -> None:
        self.delete(ORCID_PENDING_COOKIE)
