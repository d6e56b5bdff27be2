"""create_profiles_table

Revision ID: 3f1c2a9d7b10
Revises:
Create Date: 2026-02-02 09:14:07.211349+00:00

"""

from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = "3f1c2a9d7b10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.execute("""
        CREATE TABLE IF NOT EXISTS profiles (
            -- Managed-auth users reuse the auth user id; ORCID users get uuid4
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            email TEXT,
            orcid_id VARCHAR(19) UNIQUE
                CHECK (orcid_id ~ '^\\d{4}-\\d{4}-\\d{4}-\\d{3}[\\dX]$'),
            full_name TEXT,
            display_name TEXT,
            avatar_url TEXT,
            role VARCHAR(20) NOT NULL DEFAULT 'user'
                CHECK (role IN ('user', 'researcher', 'admin')),
            tokens INTEGER NOT NULL DEFAULT 0,
            total_earned INTEGER NOT NULL DEFAULT 0 CHECK (total_earned >= 0),
            total_spent INTEGER NOT NULL DEFAULT 0 CHECK (total_spent >= 0),
            referral_code VARCHAR(32) UNIQUE,
            referred_by VARCHAR(32),
            referral_count INTEGER NOT NULL DEFAULT 0,
            provider VARCHAR(32),
            researcher_unlocked_at TIMESTAMPTZ,
            last_active TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );

        -- Email lookups are case-insensitive and not unique
        CREATE INDEX IF NOT EXISTS idx_profiles_email_lower ON profiles (lower(email));

        CREATE OR REPLACE FUNCTION update_profiles_updated_at()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;

        DROP TRIGGER IF EXISTS profiles_updated_at_trigger ON profiles;
        CREATE TRIGGER profiles_updated_at_trigger
            BEFORE UPDATE ON profiles
            FOR EACH ROW
            EXECUTE FUNCTION update_profiles_updated_at();
    """)


def downgrade() -> None:
    """Downgrade schema."""
    op.execute("""
        DROP TRIGGER IF EXISTS profiles_updated_at_trigger ON profiles;
        DROP FUNCTION IF EXISTS update_profiles_updated_at();
        DROP TABLE IF EXISTS profiles CASCADE;
    """)
