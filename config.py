"""Configuration for the bracket engine."""
from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Database
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"sqlite+aiosqlite:///{Path(__file__).parent / 'brackets.db'}",
)

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def _parse_roles(value: str) -> set[str]:
    if not value:
        return set()
    return {x.strip().lower() for x in value.split(",") if x.strip()}


def _parse_seed(value: str) -> int | None:
    if not value or not value.strip():
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


# Web auth. Tokens are issued by the platform's auth service; we only verify them.
JWT_SECRET = os.getenv("JWT_SECRET", "change-me-in-production-use-long-random-string")
JWT_ALGORITHM = "HS256"
STAFF_ROLES = _parse_roles(os.getenv("STAFF_ROLES", "staff,admin"))

# Fixed shuffle seed for reproducible brackets (unset = system randomness)
BRACKET_RNG_SEED = _parse_seed(os.getenv("BRACKET_RNG_SEED", ""))
