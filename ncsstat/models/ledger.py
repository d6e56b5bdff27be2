from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel


TransactionType = Literal[
    "signup_bonus",
    "referral_bonus",
    "referral_reward",
    "earn_feedback",
    "spend_analysis",
    "admin_adjust",
]


class BalanceCheck(BaseModel):
    """Whether a user can afford an action."""

    has_enough: bool
    current_balance: int
    required: int


class LedgerResult(BaseModel):
    """Outcome of a debit or credit."""

    success: bool
    new_balance: int
    error: str | None = None


class Balance(BaseModel):
    tokens: int
    total_earned: int
    total_spent: int


class TokenTransaction(BaseModel):
    """An immutable row of the token transaction log."""

    id: int
    user_id: UUID
    amount: int
    type: TransactionType
    description: str | None
    balance_after: int
    created_at: datetime
