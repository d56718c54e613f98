"""Domain-specific exceptions for the pingback rewards service.

Every step of pingback processing raises one of these so the controller can
map it to a terminal outcome precisely. None of them ever reaches the
partner: the webhook route always answers ``200 OK``.
"""

from __future__ import annotations


# =============================================================================
# Pingback processing
# =============================================================================


class PingbackError(Exception):
    """Base exception for a pingback that ends without issuing a token."""

    outcome: str = "internal_error"


class MalformedPingbackError(PingbackError):
    """A required query parameter (uid, ref, sig) is missing or empty."""

    outcome = "malformed"

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Missing required parameters: {', '.join(missing)}")


class ConfigurationMissingError(PingbackError):
    """PAYMENTWALL_SECRET_KEY is not configured."""

    outcome = "misconfigured"


class InvalidSignatureError(PingbackError):
    """The supplied ``sig`` does not match the digest of the parameters."""

    outcome = "unverified"


class InvalidIdentifierError(PingbackError):
    """``uid`` is not a well-formed UUID."""

    outcome = "invalid_identifier"


class DuplicateEventError(PingbackError):
    """A token was already issued for this (source, ref) pair."""

    outcome = "duplicate"


class QuotaExceededError(PingbackError):
    """The user already received the daily maximum of tokens."""

    outcome = "quota_exceeded"

    def __init__(self, count: int, limit: int) -> None:
        self.count = count
        self.limit = limit
        super().__init__(f"Daily limit reached ({count}/{limit})")


# =============================================================================
# Token store
# =============================================================================


class StoreUnavailableError(PingbackError):
    """The token store failed or did not answer within the configured timeout."""

    outcome = "store_unavailable"
