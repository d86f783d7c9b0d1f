"""Core module providing configuration, logging, exceptions and run primitives.

Exports:
    Exceptions:
        ForgeError: Base exception for all application errors.
        GenerationError, BackendError, ValidationError, ExhaustedRetriesError:
            Generation-domain errors driving and terminating agent retries.
        CancellationError: User-initiated cancellation.

    Configuration:
        Settings: Main application settings class.
        get_settings: Get the settings singleton.
        clear_settings_cache: Force settings reload.

    Logging:
        configure_logging, get_logger, run_context, log_stage.

    Run primitives:
        CancellationToken: Cooperative cancellation signal.
        random_id: Process-unique document identifiers.
"""

from __future__ import annotations

from dnd_forge.core.cancellation import CancellationToken, guarded
from dnd_forge.core.config import (
    AIProviderSettings,
    CompendiumSettings,
    ImageSettings,
    Settings,
    StorageSettings,
    clear_settings_cache,
    get_settings,
)
from dnd_forge.core.exceptions import (
    BackendError,
    CancellationError,
    CompendiumError,
    ConfigurationError,
    ExhaustedRetriesError,
    ForgeError,
    GenerationError,
    ImageGenerationError,
    StorageError,
    ValidationError,
)
from dnd_forge.core.ids import IdRegistry, derive_id, is_valid_id, random_id
from dnd_forge.core.logging import (
    configure_logging,
    get_logger,
    log_stage,
    run_context,
)


__all__ = [
    # Exceptions
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
    # Configuration
    "Settings",
    "AIProviderSettings",
    "ImageSettings",
    "CompendiumSettings",
    "StorageSettings",
    "get_settings",
    "clear_settings_cache",
    # Logging
    "configure_logging",
    "get_logger",
    "run_context",
    "log_stage",
    # Run primitives
    "CancellationToken",
    "guarded",
    "IdRegistry",
    "random_id",
    "is_valid_id",
    "derive_id",
]
