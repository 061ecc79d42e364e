# FILE: services/voice_pipeline.py
"""
Voice command session: listen -> parse -> resolve -> confirm -> execute/cancel.

States:
  idle -> listening -> processing -> confirming -> awaiting_confirmation
       -> idle (executed or cancelled) | error

Rules:
- One session per instance. Every start/confirm/cancel bumps the session
  generation; a coroutine resuming from an await under an older generation
  leaves state alone.
- Nothing executes unless the confirmation utterance is affirmative or the
  user taps confirm. Any ambiguity ends in "not paid".
- Speech output never decides anything: every speak() goes through the
  best-effort boundary.
"""

import inspect
import logging
import re
from typing import Any, Callable, Dict, Optional

from config import VOICE_LOCALE
from core.errors import ErrorKind, SpeechCaptureError, VoiceCommandError
from core.intent import (
    ConcreteIntent,
    IntentType,
    NamedPaymentIntent,
    ParsedIntent,
    PaybillIntent,
    PochiIntent,
    SendMoneyIntent,
    TillIntent,
)
from core.session_state import VoiceCommandState
from models.contact import ContactType, VoiceContact
from services.best_effort import best_effort, best_effort_call
from services.contact_directory import ContactDirectory
from services.intent_describer import describe_intent
from services.intent_parser import parse_intent
from services.speech import SpeechCapture, SpeechSynthesizer
from services.utils import deep_serialize, normalize_phone

logger = logging.getLogger("pesamirror.voice_pipeline")

# -----------------------------
# Phrases
# -----------------------------
UNSUPPORTED_MESSAGE = "Voice commands are not supported on this device."
CAPTURE_FALLBACK_MESSAGE = "Could not capture audio."
PARSE_GUIDANCE = "Sorry, I didn't catch that. Try: send 500 shillings to 0712345678."
CONFIRM_PROMPT = "Say yes to confirm, or no to cancel."
RETRY_PROMPT = "I couldn't hear you. Tap yes or no on screen."
DECLINED_REPLY = "Okay, no problem. Cancelled."
CANCELLED_REPLY = "Okay, cancelled."
SENDING_REPLY = "Perfect, sending now via remote push."

AFFIRMATIVE_RE = re.compile(
    r"^(?:yes|yeah|yep|yup|confirm|send|do it|go|ok|okay)\b", re.IGNORECASE
)
# Trailing "to <name>" clause of the spoken instruction
SPOKEN_NAME_RE = re.compile(r"to\s+([a-z\s]+?)\s*$", re.IGNORECASE)
_PHONE_PUNCTUATION_RE = re.compile(r"[\s\-()+]")
_DIGITS_RE = re.compile(r"[0-9]+")


def is_affirmative(utterance: str) -> bool:
    return bool(AFFIRMATIVE_RE.match(utterance.strip()))


def extract_spoken_name(transcript: str) -> Optional[str]:
    m = SPOKEN_NAME_RE.search(transcript)
    if not m:
        return None
    name = m.group(1).strip()
    return name or None


def rewrite_named_payment(intent: NamedPaymentIntent, contact: VoiceContact) -> ConcreteIntent:
    """The saved contact's type decides which concrete payment this becomes."""
    ctype = contact.effective_type
    if ctype is ContactType.TILL:
        return TillIntent(amount=intent.amount, till=contact.phone)
    if ctype is ContactType.PAYBILL:
        if not contact.accountNumber:
            raise VoiceCommandError(
                ErrorKind.RESOLUTION_FAILURE,
                f"{contact.name} needs an account number. Edit the contact to add one, "
                f"or say: pay bill {contact.phone} account <number> {intent.amount}",
            )
        return PaybillIntent(
            amount=intent.amount, business=contact.phone, account=contact.accountNumber
        )
    if ctype is ContactType.POCHI:
        return PochiIntent(amount=intent.amount, phone=contact.phone)
    return SendMoneyIntent(amount=intent.amount, phone=contact.phone)


async def _invoke(callback: Optional[Callable[..., Any]], *args: Any) -> Any:
    if callback is None:
        return None
    result = callback(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class VoiceCommandSession:
    def __init__(
        self,
        directory: ContactDirectory,
        capture: SpeechCapture,
        synthesizer: SpeechSynthesizer,
        on_submit: Callable[[ConcreteIntent], Any],
        on_dismiss: Optional[Callable[[], Any]] = None,
        locale: str = VOICE_LOCALE,
    ):
        self._directory = directory
        self._capture = capture
        self._synth = synthesizer
        self._on_submit = on_submit
        self._on_dismiss = on_dismiss
        self._locale = locale

        self._generation = 0
        self._state = VoiceCommandState.IDLE
        self._transcript = ""
        self._pending: Optional[ConcreteIntent] = None
        self._error_kind: Optional[ErrorKind] = None
        self._error_message = ""

    # -----------------------------
    # Read-only view
    # -----------------------------
    @property
    def state(self) -> VoiceCommandState:
        return self._state

    @property
    def transcript(self) -> str:
        return self._transcript

    @property
    def pending_intent(self) -> Optional[ConcreteIntent]:
        return self._pending

    @property
    def error_kind(self) -> Optional[ErrorKind]:
        return self._error_kind

    @property
    def error_message(self) -> str:
        return self._error_message

    @property
    def is_supported(self) -> bool:
        return self._capture.is_supported()

    def snapshot(self) -> Dict[str, Any]:
        return {
            "state": self._state.value,
            "transcript": self._transcript,
            "pending_intent": deep_serialize(self._pending),
            "description": describe_intent(self._pending) if self._pending else None,
            "error_kind": self._error_kind.value if self._error_kind else None,
            "error_message": self._error_message,
        }

    # -----------------------------
    # Internals
    # -----------------------------
    def _begin(self) -> int:
        self._generation += 1
        return self._generation

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _reset(self) -> None:
        self._state = VoiceCommandState.IDLE
        self._transcript = ""
        self._pending = None
        self._error_kind = None
        self._error_message = ""

    async def _speak(self, text: str) -> None:
        await best_effort(self._synth.speak(text), label="speak")

    def _cancel_speech(self) -> None:
        best_effort_call(self._synth.cancel_speech, label="cancel_speech")

    async def _fail(self, kind: ErrorKind, message: str) -> None:
        self._state = VoiceCommandState.ERROR
        self._pending = None
        self._error_kind = kind
        self._error_message = message
        logger.info(f"[SESSION_ERROR] kind={kind.value}")
        await self._speak(message)

    def resolve(self, intent: ParsedIntent) -> ConcreteIntent:
        """
        Turn a parsed intent into one that can be executed.
        Raises VoiceCommandError(RESOLUTION_FAILURE) when a name is unknown.
        """
        if intent.type.targets_phone():
            resolved = self._directory.resolve_phone_or_name(intent.phone)
            if resolved:
                return type(intent)(amount=intent.amount, phone=resolved)
            # Digits only (formatting aside); anything else is an unknown name
            if not _DIGITS_RE.fullmatch(_PHONE_PUNCTUATION_RE.sub("", intent.phone)):
                raise VoiceCommandError(
                    ErrorKind.RESOLUTION_FAILURE,
                    f'I couldn\'t find "{intent.phone}" in your contacts. '
                    "Add them first, or say a phone number directly.",
                )
            return type(intent)(amount=intent.amount, phone=normalize_phone(intent.phone))

        if intent.type is IntentType.NAMED_PAYMENT:
            contact = self._directory.resolve_contact(intent.contactName)
            if contact is None:
                raise VoiceCommandError(
                    ErrorKind.RESOLUTION_FAILURE,
                    f'I couldn\'t find "{intent.contactName}" in your contacts. '
                    "Add it first under Voice Contacts.",
                )
            return rewrite_named_payment(intent, contact)

        return intent

    async def _learn_contact(self, name: str, intent: ConcreteIntent) -> None:
        existing = self._directory.get(name)
        if existing is not None:
            # Never overwrite a merchant contact, and skip no-op writes
            if not existing.is_phone_target() or existing.phone == intent.phone:
                return
            contact = VoiceContact(name=existing.name, type=existing.type, phone=intent.phone)
        else:
            ctype = ContactType.POCHI if intent.type is IntentType.POCHI else ContactType.MOBILE
            contact = VoiceContact(name=name, type=ctype, phone=intent.phone)
        await self._directory.save(contact)

    async def _execute(self, intent: ConcreteIntent, raw: str) -> None:
        generation = self._begin()
        self._cancel_speech()
        self._reset()
        logger.info(f"[EXECUTE] type={intent.type.value}")

        name = extract_spoken_name(raw)
        if name and intent.type.targets_phone():
            await best_effort(self._learn_contact(name, intent), label="auto-save contact")

        await _invoke(self._on_submit, intent)

        if self._is_current(generation):
            await self._speak(SENDING_REPLY)

    async def _dismiss(self) -> None:
        await _invoke(self._on_dismiss)

    # -----------------------------
    # Public operations
    # -----------------------------
    async def start(self) -> VoiceCommandState:
        """Run one full session; returns the state it settled in."""
        generation = self._begin()
        self._reset()
        self._cancel_speech()

        if not self._capture.is_supported():
            await self._fail(ErrorKind.UNSUPPORTED_ENVIRONMENT, UNSUPPORTED_MESSAGE)
            return self._state

        self._state = VoiceCommandState.LISTENING
        logger.info(f"[SESSION_START] generation={generation}")

        # Step 1: capture the command
        try:
            raw = await self._capture.listen_once(self._locale)
        except SpeechCaptureError as e:
            if self._is_current(generation):
                await self._fail(ErrorKind.CAPTURE_FAILURE, str(e) or CAPTURE_FALLBACK_MESSAGE)
            return self._state
        if not self._is_current(generation):
            return self._state

        self._transcript = raw
        self._state = VoiceCommandState.PROCESSING

        # Step 2: parse and resolve
        intent = parse_intent(raw)
        if intent is None:
            logger.info("[PARSE_FAILED]")
            await self._fail(ErrorKind.PARSE_FAILURE, PARSE_GUIDANCE)
            return self._state

        try:
            resolved = self.resolve(intent)
        except VoiceCommandError as e:
            logger.info(f"[RESOLUTION_FAILED] type={intent.type.value}")
            await self._fail(e.kind, e.message)
            return self._state

        # Step 3: read back
        self._pending = resolved
        self._state = VoiceCommandState.CONFIRMING
        await self._speak(f"{describe_intent(resolved)} {CONFIRM_PROMPT}")
        if not self._is_current(generation):
            return self._state

        # Step 4: hands-free yes/no
        await self._await_confirmation(generation)
        return self._state

    async def _await_confirmation(self, generation: int) -> None:
        self._state = VoiceCommandState.AWAITING_CONFIRMATION
        try:
            response = await self._capture.listen_once(self._locale)
        except SpeechCaptureError:
            if not self._is_current(generation):
                return
            # The intent is still valid; only the confirmation channel failed
            self._state = VoiceCommandState.CONFIRMING
            self._error_kind = ErrorKind.CONFIRMATION_CAPTURE_FAILURE
            self._error_message = RETRY_PROMPT
            logger.info("[CONFIRMATION_UNHEARD]")
            await self._speak(RETRY_PROMPT)
            return
        if not self._is_current(generation):
            return

        if is_affirmative(response):
            await self._execute(self._pending, self._transcript)
            return

        logger.info("[DECLINED]")
        self._begin()
        self._reset()
        await self._speak(DECLINED_REPLY)
        await self._dismiss()

    async def confirm(self) -> bool:
        """Tap fallback: execute the pending intent without a voice reply."""
        intent = self._pending
        if intent is None:
            return False
        await self._execute(intent, self._transcript)
        return True

    async def cancel(self) -> None:
        self._begin()
        self._cancel_speech()
        self._reset()
        logger.info("[CANCELLED]")
        await self._speak(CANCELLED_REPLY)
        await self._dismiss()
