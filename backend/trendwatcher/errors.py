"""
Exception hierarchy for TrendWatcher.

Strategy and source errors are recovered inside the ingestion pipeline.
Subclasses of RunFailure end a run and carry the stage that failed so the
trigger response can tell the outcomes apart.
"""
from __future__ import annotations

from typing import Any, Optional


class TrendWatcherError(Exception):
    """Base exception for all TrendWatcher errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(TrendWatcherError):
    """A required credential or setting is missing."""


# =============================================================================
# Ingestion Errors (recovered)
# =============================================================================


class FetchError(TrendWatcherError):
    """One fetch strategy failed for one source."""

    def __init__(self, source_name: str, strategy: str, cause: Any):
        self.source_name = source_name
        self.strategy = strategy
        self.cause = cause
        super().__init__(f"{strategy} fetch r/{source_name}: {cause}")


class SourceError(TrendWatcherError):
    """Every strategy failed for one source."""

    def __init__(self, source_name: str, attempts: list[FetchError]):
        self.source_name = source_name
        self.attempts = attempts
        last = attempts[-1].message if attempts else "no strategy attempted"
        super().__init__(last, {"strategies": [a.strategy for a in attempts]})

    def __str__(self) -> str:
        return self.message


class TokenError(TrendWatcherError):
    """The credential exchange for the authenticated strategy failed."""


# =============================================================================
# Run Failures (fatal)
# =============================================================================


class RunFailure(TrendWatcherError):
    """A failure that ends the whole run."""

    stage = "run"


class IngestionFailure(RunFailure):
    """No source produced any post."""

    stage = "ingestion"

    def __init__(self, source_errors: list[str], source_names: list[str]):
        self.source_errors = source_errors
        self.source_names = source_names
        super().__init__(
            "No posts fetched from Reddit",
            {"sourceErrors": source_errors, "sourceNames": source_names},
        )


class AnalysisFailure(RunFailure):
    """The analysis call failed or returned unusable content."""

    stage = "analysis"


class PersistenceFailure(RunFailure):
    """The report could not be saved."""

    stage = "persistence"


# =============================================================================
# Notification Errors (non-fatal)
# =============================================================================


class NotificationFailure(TrendWatcherError):
    """The notification send failed."""
