import logging

from fastapi import APIRouter, Depends

from ncsstat.db.feedback import insert_feedback
from ncsstat.db.ledger import credit
from ncsstat.db.system_config import get_feedback_reward
from ncsstat.models.session import CurrentUser
from ..auth import get_current_user
from ..models import FeedbackRequest, FeedbackResponse

router = APIRouter(prefix="/api/feedback", tags=["feedback"])
logger = logging.getLogger(__name__)


@router.post("", response_model=FeedbackResponse)
def submit_feedback(
    body: FeedbackRequest,
    user: CurrentUser | None = Depends(get_current_user),
) -> FeedbackResponse:
    """Store feedback. Signed-in users are rewarded with NCS credits."""
    feedback_id = insert_feedback(
        user.id if user else None, body.type, body.message, body.page_url
    )

    points = get_feedback_reward()
    rewarded = False
    if user is not None and points > 0:
        result = credit(user.id, points, "earn_feedback", "Feedback reward")
        rewarded = result.success
        if not result.success:
            logger.warning(f"Feedback reward failed for {user.id}: {result.error}")

    return FeedbackResponse(
        success=True, feedback_id=feedback_id, rewarded=rewarded, points=points
    )
