"""Domain errors (typed) for the embedding and retrieval pipeline.

Every adapter maps library exceptions onto this family; use cases only add
context and never reclassify.
"""

from __future__ import annotations

from typing import Any

CALLER = "caller"
TRANSIENT = "transient"
CONFIGURATION = "configuration"
TIMEOUT = "timeout"
CANCELLED = "cancelled"


class DomainError(Exception):
    """Base class for domain-specific errors."""

    category: str = TRANSIENT
    retryable: bool = False

    def __init__(self, message: str = "", *, retryable: bool | None = None, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = dict(context)
        if retryable is not None:
            self.retryable = retryable

    def with_context(self, **context: Any) -> DomainError:
        """Attach observability context (user, query, message id) in place."""
        self.context.update({k: v for k, v in context.items() if v is not None})
        return self

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{k}={v!r}" for k, v in sorted(self.context.items()))
        return f"{self.message} ({details})"


class ValidationError(DomainError):
    """Invalid input/domain state."""

    category = CALLER


class InvalidInput(ValidationError):
    """Text or arguments rejected before any network call (empty, too long, bad limit)."""


class InvalidQuery(ValidationError):
    """Search request rejected: empty query, empty user or limit < 1."""


class RateLimited(DomainError):
    """Embedding provider kept signalling rate limits until retries ran out."""

    retryable = True


class ProviderUnavailable(DomainError):
    """Embedding provider failed with a transient network or service error."""

    retryable = True


class IndexUnavailable(DomainError):
    """Vector index could not be reached after bounded retries."""

    retryable = True


class CollectionNotFound(DomainError):
    """The configured collection does not exist."""

    category = CONFIGURATION


class SchemaMismatch(DomainError):
    """Collection dimension/metric or provider output disagrees with configuration."""

    category = CONFIGURATION


class Timeout(DomainError):
    """Caller deadline elapsed before the dependency answered."""

    category = TIMEOUT


class Cancelled(DomainError):
    """Caller aborted the operation."""

    category = CANCELLED


# Kinds worth parking on the ingestion backlog for an out-of-band retry.
BACKLOG_CATEGORIES = frozenset({TRANSIENT, TIMEOUT})


def is_transient(err: DomainError) -> bool:
    return err.category in BACKLOG_CATEGORIES
