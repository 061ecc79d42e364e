import asyncio

from models.contact import ContactType, VoiceContact
from services.contact_directory import ContactDirectory
from services.contact_store import InMemoryContactStore
from services.speech import RecordingSynthesizer, ScriptedSpeechCapture
from services.voice_pipeline import VoiceCommandSession


async def main():
    store = InMemoryContactStore(
        [VoiceContact(name="David", type=ContactType.MOBILE, phone="0712345678")]
    )
    directory = ContactDirectory(store)
    await directory.initialize()

    capture = ScriptedSpeechCapture(["send 500 shillings to David", "yes please"])
    synthesizer = RecordingSynthesizer()

    session = VoiceCommandSession(
        directory,
        capture,
        synthesizer,
        on_submit=lambda intent: print("Submitted intent:", intent.model_dump()),
        on_dismiss=lambda: print("Dismissed."),
    )
    state = await session.start()
    print("Final state:", state.value)
    for phrase in synthesizer.spoken:
        print("Spoke:", phrase)


if __name__ == "__main__":
    asyncio.run(main())
