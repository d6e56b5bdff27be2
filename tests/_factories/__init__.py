from .profile import ProfileFactory
from .session import AuthSessionFactory

__all__ = [
    "ProfileFactory",
    "AuthSessionFactory",
]
