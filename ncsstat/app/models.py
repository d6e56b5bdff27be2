"""Request and response bodies for the HTTP API.

The browser client expects camelCase keys on the auth endpoints, so those
models use a camelCase alias generator. Nested profile data stays in the
database's snake_case.
"""

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ncsstat.models import Profile, TokenTransaction
from ncsstat.models.session import CurrentUser, SessionSummary
from .env_loader import EnvironmentName


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EnvironmentResponse(BaseModel):
    environment: EnvironmentName


class OrcidProfileRequest(BaseModel):
    """Profile completion form. Validation happens in the handler so that
    malformed input produces a `{error}` body rather than a 422."""

    orcid: str | None = None
    name: str | None = None
    email: str | None = None


class CreatedProfile(BaseModel):
    id: UUID
    orcid_id: str
    email: str
    full_name: str | None
    tokens: int


class OrcidProfileResponse(CamelModel):
    success: bool = True
    message: str
    profile_id: UUID
    is_existing: bool
    profile: CreatedProfile | None = None


class OrcidPendingResponse(BaseModel):
    orcid: str
    name: str | None = None
    email: str | None = None


class RefreshSessionResponse(CamelModel):
    success: bool | None = None
    has_session: bool
    session: SessionSummary | None = None
    error: str | None = None


class SessionResponse(CamelModel):
    user: CurrentUser | None
    profile: Profile | None
    is_loading: bool


class CheckBalanceRequest(BaseModel):
    cost: int = Field(ge=0)


class DebitRequest(BaseModel):
    amount: int = Field(gt=0)
    reason: str = Field(min_length=1, max_length=200)


class TransactionsResponse(BaseModel):
    transactions: list[TokenTransaction]


class ReferralResponse(CamelModel):
    referral_code: str
    referral_count: int


class ApplyReferralRequest(CamelModel):
    referral_code: str = Field(min_length=1, max_length=32)


class ApplyReferralResponse(BaseModel):
    success: bool
    reward: int


class FeedbackRequest(CamelModel):
    type: str = Field(min_length=1, max_length=32)
    message: str = Field(min_length=1, max_length=5000)
    page_url: str | None = Field(default=None, max_length=2048)


class FeedbackResponse(CamelModel):
    success: bool
    feedback_id: int
    rewarded: bool
    points: int


class UnlockResearcherRequest(CamelModel):
    secret_code: str | None = None


class UnlockResearcherResponse(CamelModel):
    success: bool
    message: str
    already_researcher: bool = False
