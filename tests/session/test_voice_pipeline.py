import asyncio
from typing import List, Optional

import pytest
from unittest.mock import AsyncMock, MagicMock

from core.errors import ErrorKind, SpeechCaptureError
from core.intent import (
    PaybillIntent,
    PochiIntent,
    SendMoneyIntent,
    TillIntent,
)
from core.session_state import VoiceCommandState
from models.contact import ContactType, VoiceContact
from services.speech import RecordingSynthesizer, ScriptedSpeechCapture
from services.voice_pipeline import (
    CANCELLED_REPLY,
    DECLINED_REPLY,
    PARSE_GUIDANCE,
    RETRY_PROMPT,
    VoiceCommandSession,
    extract_spoken_name,
    is_affirmative,
)
from tests.conftest import DAVID, make_directory


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------

class Harness:
    def __init__(self, utterances: List[str], contacts=(), supported: bool = True):
        self.directory = make_directory(*contacts)
        self.capture = ScriptedSpeechCapture(utterances, supported=supported)
        self.synth = RecordingSynthesizer()
        self.submitted = []
        self.dismissed = 0
        self.session = VoiceCommandSession(
            self.directory,
            self.capture,
            self.synth,
            on_submit=self.submitted.append,
            on_dismiss=self._dismiss,
        )

    def _dismiss(self):
        self.dismissed += 1

    def run(self) -> VoiceCommandState:
        return asyncio.run(self.session.start())


# ---------------------------------------------------------------------
# TESTS: CONFIRMATION VOCABULARY
# ---------------------------------------------------------------------

@pytest.mark.parametrize("utterance", ["yes", "Yes please", "  okay ", "do it now", "send it", "go"])
def test_affirmative_replies(utterance):
    assert is_affirmative(utterance)


@pytest.mark.parametrize("utterance", ["no", "nope", "cancel", "", "good", "yesterday", "not yes"])
def test_everything_else_is_not_affirmative(utterance):
    assert not is_affirmative(utterance)


def test_spoken_name_extraction():
    assert extract_spoken_name("send 500 shillings to David") == "David"
    assert extract_spoken_name("pochi 200 to mama mboga ") == "mama mboga"
    assert extract_spoken_name("send 500 to 0712345678") is None
    assert extract_spoken_name("pay till 522533 500") is None


# ---------------------------------------------------------------------
# TESTS: END-TO-END HAPPY PATHS
# ---------------------------------------------------------------------

def test_send_to_saved_contact_confirmed_by_voice():
    h = Harness(["send 500 shillings to David", "yes please"], contacts=[DAVID])

    state = h.run()

    assert state is VoiceCommandState.IDLE
    assert h.submitted == [SendMoneyIntent(amount="500", phone="0712345678")]
    assert h.synth.spoken[0] == (
        "Send 500 shillings to 0712345678. Say yes to confirm, or no to cancel."
    )
    assert h.session.pending_intent is None
    assert h.dismissed == 0
    # Once at session start, once before executing
    assert h.synth.cancel_count == 2


def test_paybill_bypasses_contact_resolution():
    h = Harness(["pay bill 247247 account 1234 amount 500", "yes"])
    h.directory.resolve_phone_or_name = MagicMock()
    h.directory.resolve_contact = MagicMock()

    h.run()

    assert h.submitted == [PaybillIntent(amount="500", business="247247", account="1234")]
    h.directory.resolve_phone_or_name.assert_not_called()
    h.directory.resolve_contact.assert_not_called()


def test_spoken_number_needs_no_contacts():
    h = Harness(["send 1,000 to 0712 345 678", "ok"])

    h.run()

    assert h.submitted == [SendMoneyIntent(amount="1000", phone="0712345678")]


def test_async_submit_callback_is_awaited():
    h = Harness(["pay till 522533 500", "yes"])
    submit = AsyncMock()
    h.session._on_submit = submit

    h.run()

    submit.assert_awaited_once_with(TillIntent(amount="500", till="522533"))


# ---------------------------------------------------------------------
# TESTS: NAMED PAYMENTS
# ---------------------------------------------------------------------

@pytest.mark.parametrize(
    "contact, expected",
    [
        (
            VoiceContact(name="Java House", type=ContactType.TILL, phone="522533"),
            TillIntent(amount="650", till="522533"),
        ),
        (
            VoiceContact(
                name="Java House", type=ContactType.PAYBILL, phone="888880", accountNumber="77"
            ),
            PaybillIntent(amount="650", business="888880", account="77"),
        ),
        (
            VoiceContact(name="Java House", type=ContactType.POCHI, phone="0722000111"),
            PochiIntent(amount="650", phone="0722000111"),
        ),
        (
            VoiceContact(name="Java House", phone="0722000111"),
            SendMoneyIntent(amount="650", phone="0722000111"),
        ),
    ],
)
def test_named_payment_rewritten_by_contact_type(contact, expected):
    h = Harness(["pay java 650", "yes"], contacts=[contact])

    h.run()

    assert h.submitted == [expected]


def test_paybill_contact_without_account_errors_and_never_submits():
    kplc = VoiceContact(name="KPLC", type=ContactType.PAYBILL, phone="888880")
    h = Harness(["pay kplc 500", "yes"], contacts=[kplc])

    state = h.run()

    assert state is VoiceCommandState.ERROR
    assert h.session.error_kind is ErrorKind.RESOLUTION_FAILURE
    assert "needs an account number" in h.session.error_message
    assert "pay bill 888880 account <number> 500" in h.session.error_message
    assert h.submitted == []
    assert h.synth.spoken == [h.session.error_message]


def test_unknown_named_payment_errors():
    h = Harness(["pay naivas 300", "yes"])

    state = h.run()

    assert state is VoiceCommandState.ERROR
    assert h.session.error_kind is ErrorKind.RESOLUTION_FAILURE
    assert h.submitted == []


# ---------------------------------------------------------------------
# TESTS: ERROR PATHS
# ---------------------------------------------------------------------

def test_unsupported_environment_fails_immediately():
    h = Harness(["send 500 to 0712345678"], supported=False)

    state = h.run()

    assert state is VoiceCommandState.ERROR
    assert h.session.error_kind is ErrorKind.UNSUPPORTED_ENVIRONMENT
    assert h.capture.locales == []
    # Speech from a previous session is still silenced
    assert h.synth.cancel_count == 1


def test_capture_failure_is_terminal():
    h = Harness([])

    state = h.run()

    assert state is VoiceCommandState.ERROR
    assert h.session.error_kind is ErrorKind.CAPTURE_FAILURE
    assert h.synth.spoken == [h.session.error_message]


def test_parse_failure_speaks_guidance():
    h = Harness(["what's the weather"])

    state = h.run()

    assert state is VoiceCommandState.ERROR
    assert h.session.error_kind is ErrorKind.PARSE_FAILURE
    assert h.session.error_message == PARSE_GUIDANCE
    assert h.session.transcript == "what's the weather"
    assert h.synth.spoken == [PARSE_GUIDANCE]


def test_unknown_name_asks_to_add_contact():
    h = Harness(["send 500 to Kamau", "yes"])

    state = h.run()

    assert state is VoiceCommandState.ERROR
    assert "Add them first, or say a phone number directly." in h.session.error_message
    assert h.submitted == []


def test_number_with_trailing_words_is_not_submitted():
    h = Harness(["send 500 to 0712345678 please", "yes"])

    state = h.run()

    assert state is VoiceCommandState.ERROR
    assert h.session.error_kind is ErrorKind.RESOLUTION_FAILURE
    assert h.submitted == []


def test_long_spoken_number_is_normalized_before_submission():
    h = Harness(["send 500 to 0712 345 678 (home)", "yes"])
    assert h.run() is VoiceCommandState.ERROR

    h = Harness(["send 500 to 0712 - 345 - 678 9", "yes"])
    h.run()
    assert h.submitted == [SendMoneyIntent(amount="500", phone="07123456789")]


def test_till_contact_cannot_receive_send_money():
    till_david = VoiceContact(name="David", type=ContactType.TILL, phone="522533")
    h = Harness(["send 500 to David", "yes"], contacts=[till_david])

    assert h.run() is VoiceCommandState.ERROR
    assert h.submitted == []


def test_synthesis_failure_is_not_an_error():
    h = Harness(["pay till 522533 500", "yes"])
    h.synth.speak = AsyncMock(side_effect=RuntimeError("audio device busy"))

    state = h.run()

    assert state is VoiceCommandState.IDLE
    assert h.submitted == [TillIntent(amount="500", till="522533")]


# ---------------------------------------------------------------------
# TESTS: CONFIRMATION FALLBACKS
# ---------------------------------------------------------------------

def test_unheard_confirmation_returns_to_confirming():
    h = Harness(["pay till 522533 500"])

    state = h.run()

    assert state is VoiceCommandState.CONFIRMING
    assert h.session.error_kind is ErrorKind.CONFIRMATION_CAPTURE_FAILURE
    assert h.session.pending_intent == TillIntent(amount="500", till="522533")
    assert h.synth.spoken[-1] == RETRY_PROMPT
    assert h.submitted == []


def test_tap_confirm_after_unheard_confirmation():
    h = Harness(["send 500 shillings to David"], contacts=[DAVID])
    h.run()

    assert asyncio.run(h.session.confirm()) is True
    assert h.submitted == [SendMoneyIntent(amount="500", phone="0712345678")]
    assert h.session.state is VoiceCommandState.IDLE
    # Only once
    assert asyncio.run(h.session.confirm()) is False
    assert len(h.submitted) == 1


def test_tap_confirm_without_pending_intent_does_nothing():
    h = Harness([])
    assert asyncio.run(h.session.confirm()) is False
    assert h.submitted == []


def test_declined_by_voice_leaves_directory_untouched():
    h = Harness(["send 500 shillings to dav", "no"], contacts=[DAVID])

    state = h.run()

    assert state is VoiceCommandState.IDLE
    assert h.submitted == []
    assert h.dismissed == 1
    assert h.synth.spoken[-1] == DECLINED_REPLY
    assert h.directory.list() == [DAVID]


def test_manual_cancel_leaves_directory_untouched():
    h = Harness(["send 500 shillings to dav"], contacts=[DAVID])
    h.run()

    asyncio.run(h.session.cancel())

    assert h.session.state is VoiceCommandState.IDLE
    assert h.session.pending_intent is None
    assert h.submitted == []
    assert h.dismissed == 1
    assert h.synth.spoken[-1] == CANCELLED_REPLY
    assert h.directory.list() == [DAVID]


# ---------------------------------------------------------------------
# TESTS: AUTO-LEARNING CONTACTS
# ---------------------------------------------------------------------

def test_confirmed_send_learns_spoken_alias():
    h = Harness(["send 500 shillings to dav", "yes"], contacts=[DAVID])

    h.run()

    learned = h.directory.get("dav")
    assert learned is not None
    assert learned.phone == "0712345678"
    assert learned.type is ContactType.MOBILE


def test_confirmed_pochi_learns_pochi_contact():
    h = Harness(["pochi 200 to 0722000111", "yes"])
    h.run()
    assert h.directory.list() == []

    # A numeric target has no name to learn; a resolved name does
    h2 = Harness(["pochi 200 to mama", "yes"], contacts=[VoiceContact(name="Mama Mboga", phone="0722000111")])
    h2.run()
    assert h2.directory.get("mama").type is ContactType.POCHI


def test_auto_save_failure_does_not_block_submission():
    h = Harness(["send 500 shillings to dav", "yes"], contacts=[DAVID])
    h.directory.save = AsyncMock(side_effect=RuntimeError("disk full"))

    h.run()

    assert h.submitted == [SendMoneyIntent(amount="500", phone="0712345678")]


def test_merchant_contact_is_never_overwritten_by_learning():
    contacts = [
        VoiceContact(name="Java", type=ContactType.TILL, phone="522533"),
        VoiceContact(name="Java Kamau", phone="0711111111"),
    ]
    h = Harness(["send 100 to java", "yes"], contacts=contacts)

    h.run()

    assert h.submitted == [SendMoneyIntent(amount="100", phone="0711111111")]
    assert h.directory.get("java").type is ContactType.TILL


# ---------------------------------------------------------------------
# TESTS: SESSION ISOLATION
# ---------------------------------------------------------------------

class GatedCapture(ScriptedSpeechCapture):
    """First listen blocks until released; later listens play the script."""

    def __init__(self, utterances):
        super().__init__(utterances)
        self.gate: Optional[asyncio.Event] = None
        self.first = True

    async def listen_once(self, locale: str) -> str:
        if self.first:
            self.first = False
            await self.gate.wait()
            return "send 500 to 0712345678"
        return await super().listen_once(locale)


def test_new_session_abandons_suspended_one():
    h = Harness([])
    capture = GatedCapture(["pay till 522533 500", "yes"])
    h.session._capture = capture

    async def scenario():
        capture.gate = asyncio.Event()
        stale = asyncio.create_task(h.session.start())
        await asyncio.sleep(0)
        await h.session.start()
        capture.gate.set()
        await stale

    asyncio.run(scenario())

    assert h.submitted == [TillIntent(amount="500", till="522533")]
    assert h.session.state is VoiceCommandState.IDLE


class GatedConfirmationCapture(ScriptedSpeechCapture):
    """Command is heard at once; the yes/no reply waits until released."""

    def __init__(self, command: str, reply: str):
        super().__init__([command])
        self.reply = reply
        self.gate: Optional[asyncio.Event] = None
        self.heard_command = False

    async def listen_once(self, locale: str) -> str:
        if not self.heard_command:
            self.heard_command = True
            return await super().listen_once(locale)
        await self.gate.wait()
        return self.reply


def test_tap_confirm_while_listening_for_reply_submits_once():
    h = Harness([])
    capture = GatedConfirmationCapture("pay till 522533 500", "yes")
    h.session._capture = capture

    async def scenario():
        capture.gate = asyncio.Event()
        session = asyncio.create_task(h.session.start())
        while h.session.state is not VoiceCommandState.AWAITING_CONFIRMATION:
            await asyncio.sleep(0)

        assert await h.session.confirm() is True
        capture.gate.set()
        await session

    asyncio.run(scenario())

    assert h.submitted == [TillIntent(amount="500", till="522533")]
    assert h.session.state is VoiceCommandState.IDLE
    assert h.dismissed == 0


def test_capture_error_message_is_surfaced():
    h = Harness([])
    h.session._capture.listen_once = AsyncMock(side_effect=SpeechCaptureError("Microphone permission denied."))

    h.run()

    assert h.session.error_message == "Microphone permission denied."
