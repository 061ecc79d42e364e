# core/session_state.py
from enum import Enum


class VoiceCommandState(str, Enum):
    """
    Lifecycle of a single voice command session.
    """

    IDLE = "idle"
    LISTENING = "listening"
    PROCESSING = "processing"
    CONFIRMING = "confirming"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    ERROR = "error"

