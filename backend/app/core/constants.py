"""Application-wide constants for the ThoughtCloud platform."""

from __future__ import annotations

BRAND_NAME = "ThoughtCloud"

API_TITLE = f"{BRAND_NAME} API"
API_VERSION = "1.0.0"
API_DESCRIPTION = "Mentor marketplace backend: availability, session booking and payments."

# Payment constraints (minor currency units)
MIN_PAYMENT_AMOUNT = 50  # Stripe's smallest chargeable amount in USD cents
MAX_PAYMENT_AMOUNT = 99_999_999

# Text constraints
MAX_NOTES_LENGTH = 1000
MAX_REASON_LENGTH = 255
MAX_MEETING_LINK_LENGTH = 500

# Query limits
DEFAULT_QUERY_LIMIT = 100
MAX_QUERY_LIMIT = 1000

# Stripe statement descriptor used on mentor payouts
PAYOUT_STATEMENT_DESCRIPTOR = "THOUGHTCLOUD PAYOUT"

WEBHOOK_SOURCE_STRIPE = "stripe"
