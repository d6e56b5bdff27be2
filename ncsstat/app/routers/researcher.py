import logging
import os
from datetime import datetime, timezone

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException

from ncsstat.db.activity import log_activity_safely
from ncsstat.db.profiles import get_profile_by_id, set_role
from ncsstat.models.session import CurrentUser
from ..auth import get_current_user
from ..errors import ApiError
from ..models import UnlockResearcherRequest, UnlockResearcherResponse

router = APIRouter(prefix="/api", tags=["researcher"])
logger = logging.getLogger(__name__)


def get_unlock_code() -> str:
    code = os.getenv("RESEARCHER_UNLOCK_CODE", "").strip()
    if not code:
        raise HTTPException(
            status_code=503, detail="Researcher unlock is not configured"
        )
    return code


@router.post("/unlock-researcher", response_model=UnlockResearcherResponse)
def unlock_researcher(
    body: UnlockResearcherRequest,
    background_tasks: BackgroundTasks,
    user: CurrentUser | None = Depends(get_current_user),
) -> UnlockResearcherResponse:
    """Upgrade the current user to the researcher role with a secret code.

    The code is compared case-insensitively. The code is checked before the
    session so a wrong code never reveals whether the caller is signed in.
    """
    secret_code = (body.secret_code or "").strip()
    if not secret_code:
        raise ApiError(400, "Secret code is required")
    if secret_code.upper() != get_unlock_code().upper():
        raise ApiError(403, "Invalid secret code")
    if user is None:
        raise ApiError(401, "You must be signed in to unlock researcher features")

    profile = get_profile_by_id(user.id)
    if profile is None:
        raise ApiError(404, "Profile not found")
    if profile.is_researcher:
        return UnlockResearcherResponse(
            success=True,
            message="Your account already has researcher access",
            already_researcher=True,
        )

    set_role(user.id, "researcher", unlocked_at=datetime.now(timezone.utc))
    logger.info(f"User {user.id} unlocked researcher role")
    background_tasks.add_task(
        log_activity_safely, user.id, "researcher_unlock", {"method": "secret_code"}
    )
    return UnlockResearcherResponse(
        success=True, message="Researcher access unlocked"
    )
