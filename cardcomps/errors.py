"""
Card Comps — Source Error Taxonomy

Adapters raise these internally. CompAdapter.fetch_comps converts every one
of them into an error SourceResult, so the orchestrator never sees them.
"""

from __future__ import annotations


class CompSourceError(Exception):
    """Base class for recoverable per-source failures."""


class ConfigurationError(CompSourceError):
    """Source credentials or endpoint are missing."""


class AuthenticationError(CompSourceError):
    """Source rejected our credentials (HTTP 401/403)."""


class SourceHTTPError(CompSourceError):
    """Non-success HTTP status from a source."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(SourceHTTPError):
    """HTTP 429 or equivalent; trips the adapter's circuit breaker."""

    def __init__(self, message: str, status_code: int | None = 429):
        super().__init__(message, status_code)


class NoDataError(CompSourceError):
    """Source answered but had nothing usable (zero results or zero relevant matches)."""


class ResponseParseError(CompSourceError):
    """Source answered with a payload we could not interpret."""
