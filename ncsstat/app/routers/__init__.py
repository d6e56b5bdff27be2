from .orcid import router as orcid_router
from .auth import router as auth_router
from .profile import router as profile_router
from .session import router as session_router
from .credits import router as credits_router
from .referral import router as referral_router
from .feedback import router as feedback_router
from .researcher import router as researcher_router

__all__ = [
    "orcid_router",
    "auth_router",
    "profile_router",
    "session_router",
    "credits_router",
    "referral_router",
    "feedback_router",
    "researcher_router",
]
