from __future__ import annotations


class MedAssistError(Exception):
    """Base class for errors raised by the chat and diagnosis pipeline."""

    user_message = "Failed to process your request. Please try again."


class ValidationError(MedAssistError):
    """Bad, missing or oversized input. Never retried automatically."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.user_message = message


class BackendConfigError(MedAssistError):
    user_message = "API configuration error. Please contact support."


class BackendCapacityError(MedAssistError):
    user_message = "Service temporarily unavailable. Please try again later."


class StreamCancelled(MedAssistError):
    """Raised when a cancellation token trips. Not shown to the user."""


class MetadataParseError(MedAssistError):
    """Trailing metadata could not be decoded. Recovered locally."""


class SessionBusyError(MedAssistError):
    user_message = "Please wait for the current response to finish."
