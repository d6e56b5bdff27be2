from .auth import (
    build_authorization_url,
    exchange_code,
    fetch_profile,
    is_configured,
    OrcidNotConfiguredError,
)
from .models import OrcidToken, OrcidProfile

__all__ = [
    "build_authorization_url",
    "exchange_code",
    "fetch_profile",
    "is_configured",
    "OrcidNotConfiguredError",
    "OrcidToken",
    "OrcidProfile",
]
