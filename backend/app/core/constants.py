"""Application-wide constants for the LinguaDesk back office."""

from __future__ import annotations

BRAND_NAME = "LinguaDesk"

# Organization defaults (used when a school has not configured its own values)
DEFAULT_CURRENCY = "PLN"
DEFAULT_TIMEZONE = "Europe/Warsaw"

# Late cancellation: a lesson cancelled less than this many hours before its
# start still pays the teacher (at the configured percent).
LATE_CANCELLATION_LIMIT_HOURS = 24
LATE_CANCELLATION_PAYOUT_PERCENT = 100

# Payout percent bounds for a payable line item
MIN_PAYOUT_PERCENT = 1
MAX_PAYOUT_PERCENT = 100

# Text constraints
MAX_PAYOUT_NOTES_LENGTH = 2000

# Query limits
DEFAULT_QUERY_LIMIT = 100
MAX_QUERY_LIMIT = 1000
