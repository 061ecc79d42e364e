# core/errors.py
from enum import Enum


class ErrorKind(str, Enum):
    UNSUPPORTED_ENVIRONMENT = "unsupported-environment"
    CAPTURE_FAILURE = "capture-failure"
    PARSE_FAILURE = "parse-failure"
    RESOLUTION_FAILURE = "resolution-failure"

    # Recoverable: the session stays in "confirming"
    CONFIRMATION_CAPTURE_FAILURE = "confirmation-capture-failure"

    def is_terminal(self) -> bool:
        return self is not ErrorKind.CONFIRMATION_CAPTURE_FAILURE


class VoiceCommandError(Exception):
    """
    A failure that ends (or, for confirmation capture, interrupts) a session.
    The message is user-facing: it is both displayed and spoken.
    """

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message


class SpeechCaptureError(Exception):
    """Raised by speech capture when no usable utterance was recorded."""


class ContactStoreError(Exception):
    """Raised when the persisted contact list cannot be read or written."""
