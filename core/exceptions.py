"""
Unified Exception Hierarchy for the neuro-genetic search.

All exceptions inherit from NeuroGeneticError, enabling consistent error
handling around the evolutionary loop.

Usage:
    from core.exceptions import NeuroGeneticError, PersistenceError

    try:
        engine.save(path)
    except PersistenceError as e:
        # Surface I/O and filename problems to the caller
        log_error(e.to_dict())
    except NeuroGeneticError as e:
        # Catch-all for system errors
        log_error(e)

Per-candidate failures (EvaluationError) are contained by the engine: the
candidate scores poorly and is evicted, the generation keeps running.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional


# =============================================================================
# BASE EXCEPTION
# =============================================================================

class NeuroGeneticError(Exception):
    """
    Base exception for all neuro-genetic search errors.

    Attributes:
        error_code: Unique identifier for this error type
        is_recoverable: Whether the caller can carry on after handling it
        context: Additional context about the error
        timestamp: When the error occurred
    """
    error_code: str = "SYSTEM_ERROR"
    is_recoverable: bool = True

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        self.message = message
        self.context = context or {}
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(message)

    def __str__(self) -> str:
        base = f"[{self.error_code}] {self.message}"
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base = f"{base} ({ctx_str})"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "is_recoverable": self.is_recoverable,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================

class ConfigurationError(NeuroGeneticError):
    """
    Base class for configuration-related errors.
    """
    error_code = "CONFIG_ERROR"


class SettingsValidationError(ConfigurationError):
    """
    Raised when settings fail schema validation.

    Uses Pydantic validation under the hood.
    """
    error_code = "SETTINGS_INVALID"


class PersistenceError(ConfigurationError):
    """
    Raised when evolutionary state cannot be saved or loaded.

    Examples:
    - Empty filename
    - Unwritable target path
    - Malformed serialized state
    """
    error_code = "PERSISTENCE_FAILED"


# =============================================================================
# DATA ERRORS
# =============================================================================

class SampleError(NeuroGeneticError):
    """
    Raised when a sample provider breaks its contract.

    Examples:
    - Empty sample sequence
    - Feature vectors of differing width
    - Non-finite prices
    """
    error_code = "SAMPLE_INVALID"


# =============================================================================
# EVALUATION ERRORS
# =============================================================================

class EvaluationError(NeuroGeneticError):
    """
    Raised when a single candidate fails to evaluate or mutate.

    The engine contains these: the candidate is penalised, never the
    generation.
    """
    error_code = "EVALUATION_FAILED"


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def get_error_code(error: Exception) -> str:
    """
    Get the error code for an exception.

    Returns:
        Error code string, or "UNKNOWN" for foreign exceptions
    """
    if isinstance(error, NeuroGeneticError):
        return error.error_code
    return "UNKNOWN"
