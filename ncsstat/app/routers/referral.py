import logging

from fastapi import APIRouter, BackgroundTasks, Depends

from ncsstat.db.activity import log_activity_safely
from ncsstat.db.profiles import get_profile_by_id
from ncsstat.db.referrals import apply_referral_code, get_or_create_referral_code
from ncsstat.db.system_config import get_referral_reward
from ncsstat.models.session import CurrentUser
from ..auth import require_user
from ..errors import ApiError
from ..models import ApplyReferralRequest, ApplyReferralResponse, ReferralResponse

router = APIRouter(prefix="/api/referral", tags=["referral"])
logger = logging.getLogger(__name__)


@router.get("", response_model=ReferralResponse)
def read_referral(user: CurrentUser = Depends(require_user)) -> ReferralResponse:
    """The user's own referral code (created on first request) and count."""
    try:
        code = get_or_create_referral_code(user.id)
    except LookupError:
        raise ApiError(404, "Profile not found")
    profile = get_profile_by_id(user.id)
    return ReferralResponse(
        referral_code=code,
        referral_count=profile.referral_count if profile else 0,
    )


@router.post("/apply", response_model=ApplyReferralResponse)
def apply_referral(
    body: ApplyReferralRequest,
    background_tasks: BackgroundTasks,
    user: CurrentUser = Depends(require_user),
) -> ApplyReferralResponse:
    """Apply someone else's referral code; both sides get the reward."""
    reward = get_referral_reward()
    result = apply_referral_code(user.id, body.referral_code, reward)
    if not result.success:
        raise ApiError(400, result.error or "Could not apply referral code")

    background_tasks.add_task(
        log_activity_safely,
        user.id,
        "referral_applied",
        {"referrer_id": str(result.referrer_id), "reward": result.reward},
    )
    return ApplyReferralResponse(success=True, reward=result.reward)
