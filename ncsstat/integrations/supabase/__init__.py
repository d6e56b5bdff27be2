from .auth import (
    build_authorize_url,
    exchange_code_for_session,
    refresh_session,
    sign_out,
    SUPPORTED_PROVIDERS,
)
from .session_store import CookieSessionStore
from .tokens import validate_access_token

__all__ = [
    "build_authorize_url",
    "exchange_code_for_session",
    "refresh_session",
    "sign_out",
    "SUPPORTED_PROVIDERS",
    "CookieSessionStore",
    "validate_access_token",
]
