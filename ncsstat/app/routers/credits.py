"""NCS credit balance and spending."""

import logging

from fastapi import APIRouter, Depends, Query

from ncsstat.db.ledger import check_balance, debit, get_balance_detail, get_transactions
from ncsstat.models import Balance, BalanceCheck, LedgerResult
from ncsstat.models.session import CurrentUser
from ..auth import require_user
from ..models import CheckBalanceRequest, DebitRequest, TransactionsResponse

router = APIRouter(prefix="/api/credits", tags=["credits"])
logger = logging.getLogger(__name__)


@router.get("/balance", response_model=Balance)
def read_balance(user: CurrentUser = Depends(require_user)) -> Balance:
    return get_balance_detail(user.id)


@router.post("/check", response_model=BalanceCheck)
def check_credits(
    body: CheckBalanceRequest, user: CurrentUser = Depends(require_user)
) -> BalanceCheck:
    """Check whether the user can afford an action costing `cost`."""
    return check_balance(user.id, body.cost)


@router.post("/debit", response_model=LedgerResult, response_model_exclude_none=True)
def debit_credits(
    body: DebitRequest, user: CurrentUser = Depends(require_user)
) -> LedgerResult:
    """Spend credits. An insufficient balance is reported, not raised."""
    result = debit(user.id, body.amount, body.reason)
    if not result.success:
        logger.info(f"Debit refused for user {user.id}: {result.error}")
    return result


@router.get("/transactions", response_model=TransactionsResponse)
def read_transactions(
    limit: int = Query(default=20, ge=1, le=100),
    user: CurrentUser = Depends(require_user),
) -> TransactionsResponse:
    return TransactionsResponse(transactions=get_transactions(user.id, limit=limit))
