# services/speech.py
"""
Speech collaborators.

Capture and synthesis are one-shot async operations owned by the platform.
The pipeline only depends on the two abstract contracts below; the scripted
and recording implementations drive it from plain text (HTTP layer, tests).
"""

import logging
from abc import ABC, abstractmethod
from collections import deque
from typing import Iterable, List, Optional

from core.errors import SpeechCaptureError

logger = logging.getLogger("pesamirror.speech")

NO_SPEECH_MESSAGE = "No speech detected. Please try again."


class SpeechCapture(ABC):
    def is_supported(self) -> bool:
        return True

    @abstractmethod
    async def listen_once(self, locale: str) -> str:
        """Capture one utterance; raise SpeechCaptureError on failure."""


class SpeechSynthesizer(ABC):
    @abstractmethod
    async def speak(self, text: str) -> None:
        pass

    @abstractmethod
    def cancel_speech(self) -> None:
        """Interrupt any audio in progress. Synchronous and idempotent."""


class ScriptedSpeechCapture(SpeechCapture):
    """
    Plays back queued utterances in order. An exhausted script behaves like
    a microphone that heard nothing.
    """

    def __init__(self, utterances: Optional[Iterable[str]] = None, supported: bool = True):
        self._queue = deque(utterances or [])
        self.supported = supported
        self.locales: List[str] = []

    def script(self, utterances: Iterable[str]) -> None:
        self._queue = deque(utterances)

    def is_supported(self) -> bool:
        return self.supported

    async def listen_once(self, locale: str) -> str:
        self.locales.append(locale)
        if not self._queue:
            raise SpeechCaptureError(NO_SPEECH_MESSAGE)
        return self._queue.popleft()


class RecordingSynthesizer(SpeechSynthesizer):
    """Keeps every phrase instead of playing it."""

    def __init__(self):
        self.spoken: List[str] = []
        self.cancel_count = 0

    async def speak(self, text: str) -> None:
        logger.debug(f"[SPEAK] {text}")
        self.spoken.append(text)

    def cancel_speech(self) -> None:
        self.cancel_count += 1

    def drain(self) -> List[str]:
        phrases, self.spoken = self.spoken, []
        return phrases
