"""add_activity_and_feedback_tables

Revision ID: e71a3b0c95d4
Revises: c2d95a7e4f18
Create Date: 2026-02-05 10:47:33.017655+00:00

"""

from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = "e71a3b0c95d4"
down_revision: Union[str, Sequence[str], None] = "c2d95a7e4f18"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    # No FK on user_id: audit rows outlive the profiles they mention
    op.execute("""
        CREATE TABLE IF NOT EXISTS activity_logs (
            id BIGSERIAL PRIMARY KEY,
            user_id UUID NOT NULL,
            action VARCHAR(50) NOT NULL,
            details JSONB NOT NULL DEFAULT '{}'::jsonb,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );

        CREATE INDEX IF NOT EXISTS idx_activity_logs_user_created
            ON activity_logs (user_id, created_at DESC);
        CREATE INDEX IF NOT EXISTS idx_activity_logs_action ON activity_logs (action);
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS user_feedback (
            id BIGSERIAL PRIMARY KEY,
            user_id UUID REFERENCES profiles(id) ON DELETE SET NULL,
            type VARCHAR(32) NOT NULL,
            message TEXT NOT NULL,
            page_url TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );
    """)


def downgrade() -> None:
    """Downgrade schema."""
    op.execute("""
        DROP TABLE IF EXISTS user_feedback;
        DROP TABLE IF EXISTS activity_logs;
    """)
