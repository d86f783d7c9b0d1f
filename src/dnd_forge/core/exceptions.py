"""Custom exception hierarchy for DnD Forge.

All exceptions inherit from ForgeError, enabling unified error handling at the
top-level caller while preserving domain-specific context. The generation
domain distinguishes recoverable failures (BackendError, ValidationError),
which drive an agent's retry loop, from fatal ones (ExhaustedRetriesError).
CancellationError is a user-initiated, non-failure outcome.

Example:
    >>> from dnd_forge.core.exceptions import BackendError
    >>> raise BackendError("Gateway timeout", status_code=504, provider="openrouter")
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from dnd_forge.schema.validator import ValidationIssue


class ForgeError(Exception):
    """Base exception for all DnD Forge errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary containing additional error context.
    """

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        """Initialize the base exception.

        Args:
            message: Human-readable error description.
            details: Optional dictionary containing additional error context.
        """
        self.message = message
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the exception message with optional details.

        Returns:
            Formatted error message including any provided details.
        """
        if self.details:
            detail_str = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
            return f"{self.message} [{detail_str}]"
        return self.message

    def __repr__(self) -> str:
        """Return a detailed string representation of the exception."""
        return f"{self.__class__.__name__}(message={self.message!r}, details={self.details!r})"


# =============================================================================
# Configuration
# =============================================================================


class ConfigurationError(ForgeError):
    """Raised when application configuration is invalid or incomplete."""

    def __init__(
        self,
        message: str,
        *,
        config_key: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize configuration error with config key context.

        Args:
            message: Human-readable error description.
            config_key: The configuration key that caused the error.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if config_key:
            combined_details["config_key"] = config_key
        super().__init__(message, details=combined_details)


# =============================================================================
# Generation Domain Exceptions
# =============================================================================


class GenerationError(ForgeError):
    """Base exception for all generative-model errors.

    Raised when there are issues with model calls, output parsing, or
    schema enforcement of generated content.
    """

    def __init__(
        self,
        message: str,
        *,
        model: str | None = None,
        provider: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize generation error with model context.

        Args:
            message: Human-readable error description.
            model: Name of the model involved.
            provider: Name of the provider (e.g., 'openrouter', 'gemini').
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if model:
            combined_details["model"] = model
        if provider:
            combined_details["provider"] = provider
        super().__init__(message, details=combined_details)


class BackendError(GenerationError):
    """Raised when a backend call fails (non-2xx response or network failure).

    Recoverable: an agent treats it like a validation failure and retries.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        model: str | None = None,
        provider: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize backend error with HTTP status context.

        Args:
            message: Human-readable error description.
            status_code: HTTP status returned by the backend, if any.
            model: Name of the model involved.
            provider: Name of the provider.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if status_code is not None:
            combined_details["status_code"] = status_code
        super().__init__(message, model=model, provider=provider, details=combined_details)


class ValidationError(GenerationError):
    """Raised when model output fails the schema check.

    Recoverable: drives the agent retry loop.
    """

    def __init__(
        self,
        message: str,
        *,
        issues: list[ValidationIssue] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize validation error with the structured issue list.

        Args:
            message: Human-readable error description.
            issues: The (path, message) issues reported by the validator.
            details: Optional dictionary containing additional error context.
        """
        self.issues = list(issues or [])
        super().__init__(message, details=details)


class ExhaustedRetriesError(GenerationError):
    """Raised when an agent used up its retry budget without a valid result.

    Fatal for the current agent call; aborts the whole pipeline run.
    """

    def __init__(
        self,
        message: str,
        *,
        attempts: int | None = None,
        last_error: str | None = None,
        model: str | None = None,
        provider: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with retry accounting.

        Args:
            message: Human-readable error description.
            attempts: Number of backend attempts that were made.
            last_error: The last recorded issue or exception message.
            model: Name of the model involved.
            provider: Name of the provider.
            details: Optional dictionary containing additional error context.
        """
        self.attempts = attempts
        self.last_error = last_error
        combined_details = details or {}
        if attempts is not None:
            combined_details["attempts"] = attempts
        if last_error:
            combined_details["last_error"] = last_error
        super().__init__(message, model=model, provider=provider, details=combined_details)


class ImageGenerationError(GenerationError):
    """Raised when an image backend fails to return image data."""


# =============================================================================
# Cancellation
# =============================================================================


class CancellationError(ForgeError):
    """Raised when a run is cancelled by the user.

    Propagates immediately, bypasses every retry loop and is surfaced as a
    distinct non-failure outcome by the top-level caller.
    """

    def __init__(self, message: str = "Operation cancelled", *, stage: str | None = None) -> None:
        """Initialize cancellation error.

        Args:
            message: Human-readable description.
            stage: Pipeline stage that observed the cancellation.
        """
        super().__init__(message, details={"stage": stage} if stage else None)


# =============================================================================
# Content & Storage Exceptions
# =============================================================================


class CompendiumError(ForgeError):
    """Raised when a source collection cannot be indexed or read."""

    def __init__(
        self,
        message: str,
        *,
        collection_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize compendium error with collection context.

        Args:
            message: Human-readable error description.
            collection_id: Identifier of the source collection involved.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if collection_id:
            combined_details["collection_id"] = collection_id
        super().__init__(message, details=combined_details)


class StorageError(ForgeError):
    """Raised when the content store or host entity store fails."""


__all__ = [
    "ForgeError",
    "ConfigurationError",
    "GenerationError",
    "BackendError",
    "ValidationError",
    "ExhaustedRetriesError",
    "ImageGenerationError",
    "CancellationError",
    "CompendiumError",
    "StorageError",
]
