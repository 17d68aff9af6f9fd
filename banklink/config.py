"""
Configuration module for banklink.

Centralizes configuration with environment variable support. Values are
read once at import; the default verifier chain is built from them as an
immutable tuple and handed to each packet at construction.
"""

import os
from datetime import timezone, tzinfo
from typing import Tuple
from zoneinfo import ZoneInfo

# ============================================================
# Protocol field names
# ============================================================

MAC_FIELD = os.getenv("BANKLINK_MAC_FIELD", "VK_MAC")
NONCE_FIELD = os.getenv("BANKLINK_NONCE_FIELD", "VK_NONCE")
DATETIME_FIELD = os.getenv("BANKLINK_DATETIME_FIELD", "VK_DATETIME")
DATE_FIELD = os.getenv("BANKLINK_DATE_FIELD", "VK_DATE")
TIME_FIELD = os.getenv("BANKLINK_TIME_FIELD", "VK_TIME")
ENCODING_FIELD = os.getenv("BANKLINK_ENCODING_FIELD", "VK_ENCODING")

# ============================================================
# Verification
# ============================================================

MAX_CLOCK_SKEW_SECONDS = int(os.getenv("BANKLINK_MAX_CLOCK_SKEW_SECONDS", "300"))
TIMEZONE = os.getenv("BANKLINK_TIMEZONE", "UTC")
NONCE_TTL_SECONDS = int(os.getenv("BANKLINK_NONCE_TTL_SECONDS", "900"))

# ============================================================
# Transport
# ============================================================

DEFAULT_ENCODING = os.getenv("BANKLINK_DEFAULT_ENCODING", "UTF-8")
FORWARD_TIMEOUT = float(os.getenv("BANKLINK_FORWARD_TIMEOUT", "30"))

# ============================================================
# Logging
# ============================================================

LOG_LEVEL = os.getenv("BANKLINK_LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("BANKLINK_LOG_JSON", "true").lower() in ("1", "true", "yes")


def resolve_timezone(name: str = TIMEZONE) -> tzinfo:
    """Map a zone name to a tzinfo; 'UTC' needs no tz database."""
    if name.upper() in ("UTC", "Z"):
        return timezone.utc
    return ZoneInfo(name)


def default_verifiers() -> Tuple:
    """
    Build the default post-MAC verifier chain from configuration.

    Order: freshness, nonce, date consistency. All three always run.
    """
    from .verifiers import DateConsistencyVerifier, NonceVerifier, TimestampFreshnessVerifier

    return (
        TimestampFreshnessVerifier(
            max_skew_seconds=MAX_CLOCK_SKEW_SECONDS,
            datetime_field=DATETIME_FIELD,
            date_field=DATE_FIELD,
            time_field=TIME_FIELD,
            tz=resolve_timezone(),
        ),
        NonceVerifier(nonce_field=NONCE_FIELD),
        DateConsistencyVerifier(
            datetime_field=DATETIME_FIELD,
            date_field=DATE_FIELD,
            time_field=TIME_FIELD,
        ),
    )

