"""add_system_config_table

Revision ID: 8b4e0c61d2f3
Revises: 3f1c2a9d7b10
Create Date: 2026-02-02 09:31:45.902114+00:00

"""

from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = "8b4e0c61d2f3"
down_revision: Union[str, Sequence[str], None] = "3f1c2a9d7b10"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.execute("""
        CREATE TABLE IF NOT EXISTS system_config (
            key TEXT PRIMARY KEY,
            value JSONB NOT NULL,
            description TEXT,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );

        INSERT INTO system_config (key, value, description) VALUES
            ('default_ncs_balance', '100000', 'Starting NCS balance for new users'),
            ('referral_reward', '5000', 'NCS given to both sides of a referral'),
            ('feedback_reward', '50', 'NCS given for submitting feedback')
        ON CONFLICT (key) DO NOTHING;
    """)


def downgrade() -> None:
    """Downgrade schema."""
    op.execute("DROP TABLE IF EXISTS system_config")
