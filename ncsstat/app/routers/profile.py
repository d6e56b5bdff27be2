"""Profile completion for first-time ORCID users."""

import logging
from dataclasses import dataclass
from uuid import uuid4

from fastapi import APIRouter, BackgroundTasks, Depends, Response
from fastapi.responses import JSONResponse

from ncsstat.db.activity import log_activity_safely
from ncsstat.db.profiles import (
    attach_orcid,
    create_orcid_profile,
    get_profile_by_email,
    get_profile_by_orcid,
    touch_last_active,
)
from ncsstat.db.system_config import get_default_balance
from ncsstat.models import Profile
from ncsstat.models.profile import is_valid_email, is_valid_orcid_id
from ncsstat.session.cookies import CookieStore
from ..auth import get_cookie_store
from ..errors import ApiError
from ..models import (
    CreatedProfile,
    OrcidPendingResponse,
    OrcidProfileRequest,
    OrcidProfileResponse,
)
from ..rate_limit import orcid_profile_limiter

router = APIRouter(prefix="/api/auth", tags=["profile"])
logger = logging.getLogger(__name__)


@dataclass
class BootstrapResult:
    profile: Profile
    is_existing: bool
    message: str


def bootstrap_orcid_profile(
    orcid_id: str, name: str | None, email: str
) -> BootstrapResult:
    """Find or create the profile for an ORCID registration.

    An existing profile with the same email wins over one with the same
    ORCID iD, and gets the iD attached. Safe to repeat with the same input.
    """
    by_email = get_profile_by_email(email)
    if by_email is not None:
        updated = attach_orcid(by_email.id, orcid_id, name)
        return BootstrapResult(
            profile=updated or by_email,
            is_existing=True,
            message="Profile updated with ORCID",
        )

    by_orcid = get_profile_by_orcid(orcid_id)
    if by_orcid is not None:
        touch_last_active(by_orcid.id)
        return BootstrapResult(
            profile=by_orcid, is_existing=True, message="ORCID user already exists"
        )

    profile, inserted = create_orcid_profile(
        profile_id=uuid4(),
        orcid_id=orcid_id,
        email=email,
        name=name,
        tokens=get_default_balance(),
    )
    if not inserted:
        # Lost a race with a concurrent registration of the same iD
        return BootstrapResult(
            profile=profile, is_existing=True, message="ORCID user already exists"
        )
    return BootstrapResult(
        profile=profile, is_existing=False, message="Profile created successfully"
    )


def resume_orcid_profile(
    orcid_id: str, session_profile_id: str | None
) -> BootstrapResult | None:
    """The already-completed profile, when the ORCID session belongs to it."""
    if session_profile_id is None:
        return None
    profile = get_profile_by_orcid(orcid_id)
    if profile is None or str(profile.id) != session_profile_id:
        return None
    touch_last_active(profile.id)
    return BootstrapResult(
        profile=profile, is_existing=True, message="ORCID user already exists"
    )


@router.post(
    "/orcid-profile",
    response_model=OrcidProfileResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(orcid_profile_limiter)],
)
def complete_orcid_profile(
    body: OrcidProfileRequest,
    response: Response,
    background_tasks: BackgroundTasks,
    cookies: CookieStore = Depends(get_cookie_store),
) -> OrcidProfileResponse:
    """Create or update the profile for an ORCID user and sign them in."""
    orcid_id = (body.orcid or "").strip()
    email = (body.email or "").strip()
    name = (body.name or "").strip() or None

    if not orcid_id or not email:
        raise ApiError(400, "ORCID and email are required")
    if not is_valid_orcid_id(orcid_id):
        raise ApiError(400, "Invalid ORCID iD")
    if not is_valid_email(email):
        raise ApiError(400, "Invalid email address")

    # The iD must be the one ORCID just confirmed, or already be this
    # browser's ORCID session (a repeated submit)
    pending = cookies.get_orcid_pending()
    try:
        if pending is not None and pending.orcid == orcid_id:
            result = bootstrap_orcid_profile(orcid_id, name, email)
        else:
            result = resume_orcid_profile(orcid_id, cookies.get_orcid_user())
    except Exception:
        logger.exception(f"Failed to bootstrap profile for ORCID {orcid_id}")
        raise ApiError(500, "Could not save profile")

    if result is None:
        logger.warning(f"Rejected unverified profile completion for ORCID {orcid_id}")
        raise ApiError(403, "ORCID sign-in could not be verified")

    profile = result.profile
    created = None
    if not result.is_existing:
        background_tasks.add_task(
            log_activity_safely,
            profile.id,
            "user_registered",
            {"provider": "orcid", "orcid_id": orcid_id},
        )
        created = CreatedProfile(
            id=profile.id,
            orcid_id=orcid_id,
            email=email,
            full_name=profile.full_name,
            tokens=profile.tokens,
        )

    cookies.set_orcid_user(profile.id)
    cookies.clear_orcid_pending()
    cookies.apply(response)

    return OrcidProfileResponse(
        message=result.message,
        profile_id=profile.id,
        is_existing=result.is_existing,
        profile=created,
    )


@router.get("/orcid-pending", response_model=OrcidPendingResponse)
def get_orcid_pending(
    cookies: CookieStore = Depends(get_cookie_store),
) -> OrcidPendingResponse | JSONResponse:
    """The ORCID identity awaiting profile completion, for form pre-fill."""
    pending = cookies.get_orcid_pending()
    if pending is None:
        response = JSONResponse(
            status_code=404, content={"error": "No pending ORCID registration"}
        )
        return cookies.apply(response)
    return OrcidPendingResponse(
        orcid=pending.orcid, name=pending.name, email=pending.email
    )
