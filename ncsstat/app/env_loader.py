"""Load and check the service's settings before the app is built.

Local development reads `.env.dev`. In staging and prod the platform injects
the settings, so no file is read. Import this module before anything that
reads a setting at import time.
"""

import os
import sys
from typing import Iterable, Literal
from dotenv import load_dotenv

EnvironmentName = Literal["dev", "staging", "prod"]
ENVIRONMENTS: tuple[EnvironmentName, ...] = ("dev", "staging", "prod")

# The service refuses to start without these
REQUIRED_ENV_VARS = (
    "DATABASE_URL",
    "PUBLIC_SITE_URL",
    "SUPABASE_URL",
    "SUPABASE_ANON_KEY",
)

# ORCID sign-in answers 500 "not configured" while these are unset
ORCID_ENV_VARS = ("ORCID_CLIENT_ID", "ORCID_CLIENT_SECRET")


def get_current_environment() -> EnvironmentName:
    """Get the current environment (dev, staging, or prod)."""
    env = os.getenv("ENV", "dev")
    if env not in ENVIRONMENTS:
        raise ValueError(
            f"Invalid ENV value: {env}. Must be one of {', '.join(ENVIRONMENTS)}."
        )
    return env  # type: ignore[return-value]


def load_environment() -> EnvironmentName:
    env = get_current_environment()
    if env == "dev":
        print("Loading environment variables from .env.dev")
        load_dotenv(".env.dev", verbose=True)
    else:
        print(f"Running in {env} environment (env vars injected by the platform)")
    return env


def missing_env_vars(names: Iterable[str] = REQUIRED_ENV_VARS) -> list[str]:
    """Names from `names` that are unset or blank."""
    return [name for name in names if not os.getenv(name, "").strip()]


def validate_required_env_vars() -> None:
    """Exit if a required setting is missing; warn if ORCID is not set up.

    Raises:
        SystemExit: If any required environment variables are missing.
    """
    missing = missing_env_vars()
    if missing:
        print(
            f"ERROR: Missing required environment variables: {', '.join(missing)}",
            file=sys.stderr,
        )
        print(
            "Please set these variables in your .env file or environment.",
            file=sys.stderr,
        )
        sys.exit(1)

    orcid_missing = missing_env_vars(ORCID_ENV_VARS)
    if orcid_missing:
        print(
            f"WARNING: ORCID sign-in is disabled until {', '.join(orcid_missing)} "
            "is set",
            file=sys.stderr,
        )


def public_site_url() -> str:
    """The site's origin, for redirect URIs and CORS, without a trailing slash."""
    return os.environ["PUBLIC_SITE_URL"].strip().rstrip("/")


def is_production() -> bool:
    """Whether cookies must be marked `secure`."""
    return get_current_environment() == "prod"


load_environment()
validate_required_env_vars()
