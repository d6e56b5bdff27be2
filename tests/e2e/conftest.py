import os
from pathlib import Path
from typing import Iterator

import pytest
from testcontainers.postgres import PostgresContainer
from alembic.config import Config
from alembic import command
from fastapi.testclient import TestClient

# Ensure allowed environment for env_loader
os.environ.setdefault("ENV", "dev")


@pytest.fixture(scope="session")
def db_url() -> Iterator[str]:
    """Start a Postgres container, run migrations, and return the DB URL."""
    with PostgresContainer("postgres:16") as pg:
        raw_url = pg.get_connection_url()
        # Normalize to psycopg3-compatible URL if needed
        url = raw_url.replace("postgresql+psycopg2://", "postgresql://")
        os.environ["DATABASE_URL"] = url

        # Run Alembic migrations against this database
        api_dir = Path(__file__).resolve().parents[2]
        alembic_cfg = Config(str(api_dir / "alembic.ini"))
        command.upgrade(alembic_cfg, "head")

        yield url


@pytest.fixture
def clean_db(db_url: str) -> Iterator[None]:
    """Empty the user tables after each test; system_config keeps its seed rows."""
    yield
    from ncsstat.db.connection import get_db_cursor

    with get_db_cursor() as cursor:
        cursor.execute(
            "TRUNCATE profiles, token_transactions, activity_logs, user_feedback "
            "RESTART IDENTITY CASCADE"
        )


@pytest.fixture
def client(db_url: str, clean_db: None) -> Iterator[TestClient]:
    """Unauthenticated test client against the migrated database."""
    from ncsstat.app.app import app
    from ncsstat.app.rate_limit import orcid_profile_limiter

    orcid_profile_limiter.reset()
    yield TestClient(app)
    app.dependency_overrides.clear()
