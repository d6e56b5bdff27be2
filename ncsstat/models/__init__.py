from .profile import Profile, Role, is_valid_email, is_valid_orcid_id
from .session import (
    AuthEvent,
    AuthSession,
    AuthUser,
    CurrentUser,
    SessionSummary,
    SIGN_IN_EVENTS,
)
from .ledger import (
    Balance,
    BalanceCheck,
    LedgerResult,
    TokenTransaction,
    TransactionType,
)


__all__ = [
    "Profile",
    "Role",
    "is_valid_email",
    "is_valid_orcid_id",
    "AuthEvent",
    "AuthSession",
    "AuthUser",
    "CurrentUser",
    "SessionSummary",
    "SIGN_IN_EVENTS",
    "Balance",
    "BalanceCheck",
    "LedgerResult",
    "TokenTransaction",
    "TransactionType",
]
