"""Custom exceptions for the VoiseForm voice capture core.

Provides a hierarchy of exceptions for proper error handling
and differentiation of error types.
"""

from datetime import datetime
from typing import Any

# ============================================================================
# Base Exception
# ============================================================================

class VoiseFormError(Exception):
    """Base exception for all VoiseForm errors.

    Attributes:
        message: Human-readable error message
        context: Dictionary with additional error context
        cause: Original exception that caused this error
        timestamp: When the error occurred
        error_code: Unique error code for this exception type
    """

    error_code: str = "VF000"

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None
    ):
        """Initialize VoiseFormError.

        Args:
            message: Human-readable error message
            context: Additional context information
            cause: Original exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.cause = cause
        self.timestamp = datetime.now()

    def __str__(self) -> str:
        """Return string representation with context."""
        parts = [self.message]

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f"[{context_str}]")

        if self.cause:
            parts.append(f"caused by: {type(self.cause).__name__}: {self.cause}")

        return " ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging."""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "cause": type(self.cause).__name__ if self.cause else None,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_json(self) -> dict[str, Any]:
        """Convert exception to JSON-serializable dictionary for API responses.

        Returns:
            Dictionary containing error_code, error_type, and message.
        """
        return {
            "error_code": self.error_code,
            "error_type": self.__class__.__name__,
            "message": str(self),
        }


# ============================================================================
# Capture Errors
# ============================================================================

class CaptureError(VoiseFormError):
    """Base exception for microphone capture errors.

    Attributes:
        device: Input device identifier (None for the default device)
    """

    error_code: str = "VF100"

    def __init__(
        self,
        message: str,
        device: int | str | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None
    ):
        """Initialize CaptureError.

        Args:
            message: Human-readable error message
            device: Input device identifier
            context: Additional context
            cause: Original exception
        """
        context = context or {}
        context.update({"device": device})

        super().__init__(message, context=context, cause=cause)
        self.device = device


class PermissionDeniedError(CaptureError):
    """Microphone access was refused."""

    error_code: str = "VF101"
    pass


class DeviceUnavailableError(CaptureError):
    """No usable audio input device."""

    error_code: str = "VF102"
    pass


# ============================================================================
# Recording Errors
# ============================================================================

class RecordingError(VoiseFormError):
    """Base exception for recording state machine errors.

    Attributes:
        slot_index: Slot the operation was attempted on
        state: State of the slot when the error occurred
    """

    error_code: str = "VF200"

    def __init__(
        self,
        message: str,
        slot_index: int | None = None,
        state: str | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None
    ):
        """Initialize RecordingError.

        Args:
            message: Human-readable error message
            slot_index: Slot index
            state: Slot state value
            context: Additional context
            cause: Original exception
        """
        context = context or {}
        context.update({
            "slot_index": slot_index,
            "state": state,
        })

        super().__init__(message, context=context, cause=cause)
        self.slot_index = slot_index
        self.state = state


class EmptyRecordingError(RecordingError):
    """Recording stopped without capturing any audio."""

    error_code: str = "VF201"
    pass


class ConcurrentRecordingRejected(RecordingError):
    """Start attempted while another slot is recording.

    Attributes:
        active_index: Slot currently holding the microphone
    """

    error_code: str = "VF202"

    def __init__(
        self,
        message: str,
        slot_index: int | None = None,
        active_index: int | None = None,
        context: dict[str, Any] | None = None,
    ):
        context = context or {}
        context.update({"active_index": active_index})
        super().__init__(message, slot_index=slot_index, state=None, context=context)
        self.active_index = active_index


class InvalidStateError(RecordingError):
    """Operation not permitted from the slot's current state."""

    error_code: str = "VF203"
    pass


# ============================================================================
# Transcription Errors
# ============================================================================

class TranscriptionError(VoiseFormError):
    """Base exception for transcription errors."""

    error_code: str = "VF300"
    pass


class TierFailure(TranscriptionError):
    """A single transcription tier failed.

    Every backend error (missing credentials, HTTP status, malformed
    payload, empty text) is normalized into this type before the
    pipeline falls through to the next tier.

    Attributes:
        tier: Name of the backend that failed
    """

    error_code: str = "VF301"

    def __init__(
        self,
        message: str,
        tier: str | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None
    ):
        context = context or {}
        context.update({"tier": tier})
        super().__init__(message, context=context, cause=cause)
        self.tier = tier


class TranscriptionUnavailableError(TranscriptionError):
    """Every tier failed and mock text is disabled.

    Attributes:
        failures: Tier failures in attempt order
    """

    error_code: str = "VF302"

    def __init__(
        self,
        message: str = "No transcription backend available",
        failures: list[TierFailure] | None = None,
        context: dict[str, Any] | None = None,
    ):
        self.failures = failures or []
        context = context or {}
        context.update({"tiers": [f.tier for f in self.failures]})
        super().__init__(message, context=context)


class APIError(TranscriptionError):
    """Error communicating with an external API.

    Attributes:
        status_code: HTTP status code if applicable
        endpoint: API endpoint that was called
    """

    error_code: str = "VF303"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        endpoint: str | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None
    ):
        """Initialize API error.

        Args:
            message: Error message
            status_code: HTTP status code
            endpoint: API endpoint that failed
            context: Additional context
            cause: Original exception
        """
        context = context or {}
        context.update({
            "status_code": status_code,
            "endpoint": endpoint,
        })

        super().__init__(message, context=context, cause=cause)
        self.status_code = status_code
        self.endpoint = endpoint

    @classmethod
    def from_response(
        cls,
        endpoint: str,
        status_code: int,
        response_text: str
    ) -> "APIError":
        """Create APIError from HTTP response.

        Args:
            endpoint: API endpoint
            status_code: HTTP status code
            response_text: Response body

        Returns:
            APIError instance
        """
        return cls(
            message=f"API request to {endpoint} failed with status {status_code}",
            status_code=status_code,
            endpoint=endpoint,
            context={"response_text": response_text[:500]}  # Truncate long responses
        )


# ============================================================================
# Playback Errors
# ============================================================================

class SynthesisError(VoiseFormError):
    """Error during question text-to-speech synthesis."""

    error_code: str = "VF401"
    pass


class PlaybackError(VoiseFormError):
    """Error playing audio through the output device."""

    error_code: str = "VF402"
    pass


# ============================================================================
# Configuration Errors
# ============================================================================

class ConfigError(VoiseFormError):
    """Error in configuration.

    Attributes:
        config_key: Configuration key that caused the error
        config_file: Configuration file path (if applicable)
    """

    error_code: str = "VF500"

    def __init__(
        self,
        message: str,
        config_key: str | None = None,
        config_file: str | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None
    ):
        """Initialize ConfigError.

        Args:
            message: Human-readable error message
            config_key: Configuration key
            config_file: Configuration file path
            context: Additional context
            cause: Original exception
        """
        context = context or {}
        context.update({
            "config_key": config_key,
            "config_file": config_file,
        })

        super().__init__(message, context=context, cause=cause)
        self.config_key = config_key
        self.config_file = config_file


# ============================================================================
# Persistence Errors
# ============================================================================

class PersistenceError(VoiseFormError):
    """Submission could not be handed to the persistence sink."""

    error_code: str = "VF600"
    pass


__all__ = [
    # Base
    "VoiseFormError",
    # Capture
    "CaptureError",
    "PermissionDeniedError",
    "DeviceUnavailableError",
    # Recording
    "RecordingError",
    "EmptyRecordingError",
    "ConcurrentRecordingRejected",
    "InvalidStateError",
    # Transcription
    "TranscriptionError",
    "TierFailure",
    "TranscriptionUnavailableError",
    "APIError",
    # Playback
    "SynthesisError",
    "PlaybackError",
    # Config
    "ConfigError",
    # Persistence
    "PersistenceError",
]
