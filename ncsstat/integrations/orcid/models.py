from __future__ import annotations
from typing import Any

from pydantic import BaseModel


class OrcidToken(BaseModel):
    """Token response from the ORCID token endpoint.

    ORCID returns the authenticated iD and display name alongside the token.
    """

    access_token: str
    orcid: str
    name: str | None = None
    token_type: str = "bearer"
    refresh_token: str | None = None
    expires_in: int | None = None
    scope: str | None = None


class OrcidProfile(BaseModel):
    orcid: str
    name: str
    email: str | None = None

    @classmethod
    def from_person(cls, orcid_id: str, data: dict[str, Any]) -> "OrcidProfile":
        """Build a profile from the `/{orcid}/person` response body.

        Name parts and emails are optional and may be null at any level.
        """
        name_block = data.get("name") or {}
        given = (name_block.get("given-names") or {}).get("value") or ""
        family = (name_block.get("family-name") or {}).get("value") or ""
        full_name = f"{given} {family}".strip()

        emails = (data.get("emails") or {}).get("email") or []
        primary = next((e.get("email") for e in emails if e.get("primary")), None)
        if primary is None and emails:
            primary = emails[0].get("email")

        return cls(
            orcid=orcid_id,
            name=full_name or f"ORCID User {orcid_id}",
            email=primary,
        )
