"""
Error taxonomy shared by the capture, classification and session components.

Every error carries a ``user_message`` that can be shown to a student or
teacher as-is. Service failures additionally carry a ``reason`` so callers
can decide between "try again later" and "contact support".
"""

from enum import Enum


class FailureReason(str, Enum):
    """Why an external service call failed."""

    RATE_LIMITED = "rate_limited"
    QUOTA_EXHAUSTED = "quota_exhausted"
    OTHER = "other"


class ClassroomBridgeError(Exception):
    """Base class for all errors raised by this package."""

    default_message = "Something went wrong."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)
        self.user_message = message or self.default_message


class PermissionDenied(ClassroomBridgeError):
    """The user declined access to a device, or no such device exists."""

    default_message = "Permission to use the device was denied."


class HardwareUnavailable(ClassroomBridgeError):
    """The device exists but could not be acquired."""

    default_message = "The device could not be started."


class Unsupported(ClassroomBridgeError):
    """The runtime lacks the capability entirely."""

    default_message = "This feature is not supported on this device."


class NoActiveRecording(ClassroomBridgeError):
    default_message = "No active recording."


class RecordingInProgress(ClassroomBridgeError):
    default_message = "A recording is already in progress."


class PersistenceFailed(ClassroomBridgeError):
    default_message = "Could not save data."


class ServiceError(ClassroomBridgeError):
    """Failure reported by an external inference service."""

    reason: FailureReason = FailureReason.OTHER

    @property
    def retryable(self) -> bool:
        return self.reason is FailureReason.RATE_LIMITED


class TranscriptionFailed(ServiceError):
    default_message = "Transcription failed."


class TranscriptionRateLimited(TranscriptionFailed):
    reason = FailureReason.RATE_LIMITED
    default_message = "Rate limit exceeded. Please wait and try again."


class TranscriptionQuotaExhausted(TranscriptionFailed):
    reason = FailureReason.QUOTA_EXHAUSTED
    default_message = "Transcription credits exhausted. Please contact support."


class AIProcessingFailed(ServiceError):
    default_message = "Text processing failed."


class AIRateLimited(AIProcessingFailed):
    reason = FailureReason.RATE_LIMITED
    default_message = "Rate limit exceeded. Please try again later."


class AIQuotaExhausted(AIProcessingFailed):
    reason = FailureReason.QUOTA_EXHAUSTED
    default_message = "AI credits exhausted. Please contact support."


def classify_service_failure(status_code: int | None, detail: str = "") -> FailureReason:
    """Map an HTTP status / error body to a failure reason."""
    text = (detail or "").lower()
    if status_code == 429 or "rate limit" in text:
        return FailureReason.RATE_LIMITED
    if status_code == 402 or "payment required" in text:
        return FailureReason.QUOTA_EXHAUSTED
    return FailureReason.OTHER


def _detail_message(detail: str, fallback: str) -> str:
    detail = (detail or "").strip()
    return f"{fallback} ({detail})" if detail else fallback


def transcription_error(status_code: int | None, detail: str = "") -> TranscriptionFailed:
    """Build the transcription error matching an HTTP failure."""
    reason = classify_service_failure(status_code, detail)
    if reason is FailureReason.RATE_LIMITED:
        return TranscriptionRateLimited()
    if reason is FailureReason.QUOTA_EXHAUSTED:
        return TranscriptionQuotaExhausted()
    return TranscriptionFailed(_detail_message(detail, TranscriptionFailed.default_message))


def ai_processing_error(status_code: int | None, detail: str = "") -> AIProcessingFailed:
    """Build the text-processing error matching an HTTP failure."""
    reason = classify_service_failure(status_code, detail)
    if reason is FailureReason.RATE_LIMITED:
        return AIRateLimited()
    if reason is FailureReason.QUOTA_EXHAUSTED:
        return AIQuotaExhausted()
    return AIProcessingFailed(_detail_message(detail, AIProcessingFailed.default_message))
