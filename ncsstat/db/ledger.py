"""Token ledger: balances on profiles plus an immutable transaction log.

Every balance change is a single conditional UPDATE whose result feeds the
transaction-log INSERT in the same statement, so concurrent debits against
the same user can never overdraw the balance.
"""

import logging
from uuid import UUID

import psycopg

from ncsstat.models.ledger import (
    Balance,
    BalanceCheck,
    LedgerResult,
    TokenTransaction,
    TransactionType,
)
from .connection import get_db_cursor

logger = logging.getLogger(__name__)

_DEBIT_SQL = """
    WITH updated AS (
        UPDATE profiles
        SET tokens = tokens - %(amount)s,
            total_spent = total_spent + %(amount)s,
            updated_at = NOW()
        WHERE id = %(user_id)s AND tokens >= %(amount)s
        RETURNING id, tokens
    )
    INSERT INTO token_transactions (user_id, amount, type, description, balance_after)
    SELECT id, -%(amount)s, %(type)s, %(description)s, tokens FROM updated
    RETURNING balance_after
"""

_CREDIT_SQL = """
    WITH updated AS (
        UPDATE profiles
        SET tokens = tokens + %(amount)s,
            total_earned = total_earned + %(amount)s,
            updated_at = NOW()
        WHERE id = %(user_id)s
        RETURNING id, tokens
    )
    INSERT INTO token_transactions (user_id, amount, type, description, balance_after)
    SELECT id, %(amount)s, %(type)s, %(description)s, tokens FROM updated
    RETURNING balance_after
"""


def get_balance(user_id: UUID) -> int:
    """Get a user's token balance (0 for unknown users)."""
    with get_db_cursor() as cursor:
        cursor.execute("SELECT tokens FROM profiles WHERE id = %s", (str(user_id),))
        row = cursor.fetchone()
        return (row[0] or 0) if row else 0


def get_balance_detail(user_id: UUID) -> Balance:
    with get_db_cursor() as cursor:
        cursor.execute(
            "SELECT tokens, total_earned, total_spent FROM profiles WHERE id = %s",
            (str(user_id),),
        )
        row = cursor.fetchone()
    if row is None:
        return Balance(tokens=0, total_earned=0, total_spent=0)
    tokens, total_earned, total_spent = row
    return Balance(
        tokens=tokens or 0,
        total_earned=total_earned or 0,
        total_spent=total_spent or 0,
    )


def check_balance(user_id: UUID, cost: int) -> BalanceCheck:
    """Check whether a user can afford `cost`."""
    current = get_balance(user_id)
    return BalanceCheck(has_enough=current >= cost, current_balance=current, required=cost)


def debit(
    user_id: UUID,
    amount: int,
    reason: str,
    type: TransactionType = "spend_analysis",
) -> LedgerResult:
    """Take `amount` tokens from a user.

    Fails closed: when the balance is too low nothing is written and the
    current balance is reported back.
    """
    if amount <= 0:
        raise ValueError(f"Debit amount must be positive, got {amount}")

    with get_db_cursor() as cursor:
        cursor.execute(
            _DEBIT_SQL,
            {
                "user_id": str(user_id),
                "amount": amount,
                "type": type,
                "description": reason,
            },
        )
        row = cursor.fetchone()
        if row is not None:
            logger.info(f"Debited {amount} from user {user_id}: {reason}")
            return LedgerResult(success=True, new_balance=row[0])

        cursor.execute("SELECT tokens FROM profiles WHERE id = %s", (str(user_id),))
        current = cursor.fetchone()

    if current is None:
        return LedgerResult(success=False, new_balance=0, error="Account not found")
    balance = current[0] or 0
    return LedgerResult(
        success=False,
        new_balance=balance,
        error=f"Insufficient NCS: need {amount:,}, have {balance:,}",
    )


def credit_with_cursor(
    cursor: psycopg.Cursor,
    user_id: UUID,
    amount: int,
    type: TransactionType,
    reason: str,
) -> int | None:
    """Credit a user inside an existing transaction.

    Returns:
        The new balance, or None if the user does not exist.
    """
    if amount <= 0:
        raise ValueError(f"Credit amount must be positive, got {amount}")
    cursor.execute(
        _CREDIT_SQL,
        {
            "user_id": str(user_id),
            "amount": amount,
            "type": type,
            "description": reason,
        },
    )
    row = cursor.fetchone()
    return row[0] if row else None


def credit(
    user_id: UUID, amount: int, type: TransactionType, reason: str
) -> LedgerResult:
    """Give `amount` tokens to a user and log the transaction."""
    with get_db_cursor() as cursor:
        new_balance = credit_with_cursor(cursor, user_id, amount, type, reason)
    if new_balance is None:
        return LedgerResult(success=False, new_balance=0, error="Account not found")
    logger.info(f"Credited {amount} to user {user_id} ({type})")
    return LedgerResult(success=True, new_balance=new_balance)


def get_transactions(user_id: UUID, limit: int = 20) -> list[TokenTransaction]:
    """Most recent transactions first."""
    with get_db_cursor() as cursor:
        cursor.execute(
            """
            SELECT id, user_id, amount, type, description, balance_after, created_at
            FROM token_transactions
            WHERE user_id = %s
            ORDER BY created_at DESC, id DESC
            LIMIT %s
            """,
            (str(user_id), limit),
        )
        rows = cursor.fetchall()
    return [
        TokenTransaction(
            id=id,
            user_id=uid,
            amount=amount,
            type=type,
            description=description,
            balance_after=balance_after,
            created_at=created_at,
        )
        for id, uid, amount, type, description, balance_after, created_at in rows
    ]
