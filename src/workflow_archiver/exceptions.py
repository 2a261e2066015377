"""Custom exception hierarchy for the workflow archiver."""

from typing import Any, Optional


class ArchiverError(Exception):
    """Base exception for all archiver errors."""

    def __init__(
        self,
        message: str,
        *,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        """Initialize archiver error.

        The run id is not stored here; it is bound to every log line of the
        run, including the one that reports this error.

        Args:
            message: Error message
            context: Optional context dictionary with additional details
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        parts = [self.message]
        if self.context:
            parts.append(f"[context={self.context}]")
        return " ".join(parts)


class ConfigurationError(ArchiverError):
    """Configuration-related errors."""


class DatabaseError(ArchiverError):
    """Database-related errors."""


class TransactionError(ArchiverError):
    """Raised inside an archive transaction to force a rollback."""

    def __init__(
        self,
        message: str,
        *,
        permanent: bool = False,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, context=context)
        self.permanent = permanent


class VersionLookupError(ArchiverError):
    """The version service could not produce a version for an object."""

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        body: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, context=context)
        self.status = status
        self.body = body


class VersionNotFoundError(VersionLookupError):
    """The object is not yet in the backing store, so it has no version."""
