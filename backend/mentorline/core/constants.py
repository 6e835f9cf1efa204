"""Application-wide constants for Mentorline."""

from __future__ import annotations

import os

BRAND_NAME = "Mentorline"

API_TITLE = f"{BRAND_NAME} Scheduling API"
API_DESCRIPTION = "Availability, one-on-one calls and quorum-gated group sessions."
API_VERSION = "1.0.0"

# Text constraints
MAX_REASON_LENGTH = 255
MAX_TITLE_LENGTH = 200

# Longest window accepted by the available-starts query
MAX_SLOT_QUERY_DAYS = 62

DEFAULT_DEV_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]


def _split_env(name: str) -> list[str]:
    value = os.getenv(name, "")
    return [origin.strip() for origin in value.split(",") if origin.strip()]


ALLOWED_ORIGINS = _split_env("ALLOWED_ORIGINS") or DEFAULT_DEV_ORIGINS
