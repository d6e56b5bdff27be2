"""add_token_transactions_table

Revision ID: c2d95a7e4f18
Revises: 8b4e0c61d2f3
Create Date: 2026-02-03 14:02:19.448201+00:00

"""

from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = "c2d95a7e4f18"
down_revision: Union[str, Sequence[str], None] = "8b4e0c61d2f3"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.execute("""
        CREATE TABLE IF NOT EXISTS token_transactions (
            id BIGSERIAL PRIMARY KEY,
            user_id UUID NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            -- Positive for credits, negative for debits
            amount INTEGER NOT NULL CHECK (amount <> 0),
            type VARCHAR(32) NOT NULL CHECK (type IN (
                'signup_bonus', 'referral_bonus', 'referral_reward',
                'earn_feedback', 'spend_analysis', 'admin_adjust'
            )),
            description TEXT,
            balance_after INTEGER NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );

        CREATE INDEX IF NOT EXISTS idx_token_transactions_user_created
            ON token_transactions (user_id, created_at DESC);
    """)


def downgrade() -> None:
    """Downgrade schema."""
    op.execute("DROP TABLE IF EXISTS token_transactions")
