"""Utility functions for sanitization and validation."""

import math
from datetime import datetime, timezone
from numbers import Real

import bleach

# Largest value an INTEGER column holds on every supported backend
MAX_TRACKED_SECONDS = 2**31 - 1


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp for every stored datetime column."""
    return datetime.now(timezone.utc)


def sanitize_candidate_name(name: str) -> str:
    """Strip any HTML from a candidate name.

    Candidate names are the identity key for attempts and are rendered on
    the examiner's resume-request list, so no markup is kept.
    """
    sanitized = bleach.clean(name or "", tags=[], strip=True)
    return sanitized.strip()


def is_valid_seconds(value) -> bool:
    """True for a non-negative int/float up to ``MAX_TRACKED_SECONDS``.

    Bools and strings are rejected.
    """
    if isinstance(value, bool) or not isinstance(value, Real):
        return False
    return math.isfinite(value) and 0 <= value <= MAX_TRACKED_SECONDS


def round_half_up(value: float) -> int:
    """Round to the nearest whole number, halves going up."""
    return int(math.floor(value + 0.5))
