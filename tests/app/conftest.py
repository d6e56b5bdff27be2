from typing import Callable, Iterator
from uuid import UUID

import pytest
from fastapi.testclient import TestClient

from ncsstat.app.app import app
from ncsstat.app.auth import get_current_user
from ncsstat.app.rate_limit import orcid_profile_limiter
from ncsstat.models import CurrentUser

TEST_USER_ID = UUID("22222222-2222-4222-8222-222222222222")


@pytest.fixture(autouse=True)
def _reset_rate_limits() -> Iterator[None]:
    orcid_profile_limiter.reset()
    yield
    orcid_profile_limiter.reset()


@pytest.fixture
def client() -> Iterator[TestClient]:
    """Unauthenticated test client with a fresh cookie jar."""
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def signed_in_as(client: TestClient) -> Callable[..., CurrentUser]:
    """Resolve the current user to a fixed user without touching cookies.

    Call it to pick the user; the override is removed with the client.
    """

    def _sign_in(
        user_id: UUID = TEST_USER_ID,
        email: str | None = "managed@example.com",
        source: str = "managed",
    ) -> CurrentUser:
        user = CurrentUser(id=user_id, email=email, source=source)
        app.dependency_overrides[get_current_user] = lambda: user
        return user

    return _sign_in


@pytest.fixture
def user_client(client: TestClient, signed_in_as) -> TestClient:
    """Client signed in as the default managed-auth test user."""
    signed_in_as()
    return client
