# app.py
import logging
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from asyncio import Lock

from config import DEBUG
from core.intent import ConcreteIntent
from executors.outbox import OutboxExecutor
from models.contact import VoiceContact
from services.contact_directory import ContactDirectory
from services.contact_store import ContactStore, EncryptedFileContactStore
from services.intent_describer import describe_intent
from services.intent_parser import parse_intent
from services.speech import RecordingSynthesizer, ScriptedSpeechCapture
from services.utils import deep_serialize
from services.voice_pipeline import VoiceCommandSession


# -----------------------------
# Structured Logging Setup
# -----------------------------
class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        return json.dumps(
            {
                "time": self.formatTime(record, self.datefmt),
                "level": record.levelname,
                "name": record.name,
                "message": record.getMessage(),
                "exception": self.formatException(record.exc_info) if record.exc_info else None,
            }
        )


logger = logging.getLogger("pesamirror")
logger.setLevel(logging.DEBUG if DEBUG else logging.INFO)
handler = logging.StreamHandler()
handler.setFormatter(JSONFormatter())
if not logger.handlers:
    logger.addHandler(handler)

# -----------------------------
# FastAPI App
# -----------------------------
app = FastAPI(title="PesaMirror Voice API", version="1.0")


# -----------------------------
# Voice runtime (one pipeline per process)
# -----------------------------
@dataclass
class VoiceRuntime:
    directory: ContactDirectory
    capture: ScriptedSpeechCapture
    synthesizer: RecordingSynthesizer
    executor: OutboxExecutor
    session: VoiceCommandSession
    submitted: List[dict] = field(default_factory=list)
    dismissals: int = 0

    @classmethod
    def create(cls, store: ContactStore) -> "VoiceRuntime":
        directory = ContactDirectory(store)
        capture = ScriptedSpeechCapture()
        synthesizer = RecordingSynthesizer()
        executor = OutboxExecutor()
        created: Optional["VoiceRuntime"] = None

        async def on_submit(intent: ConcreteIntent) -> None:
            created.submitted.append(await executor.execute(intent))

        def on_dismiss() -> None:
            created.dismissals += 1

        session = VoiceCommandSession(directory, capture, synthesizer, on_submit, on_dismiss)
        created = cls(directory, capture, synthesizer, executor, session)
        return created

    def drain(self) -> Dict[str, Any]:
        """Session snapshot plus everything spoken/submitted since the last drain."""
        submitted, self.submitted = self.submitted, []
        return {
            "session": self.session.snapshot(),
            "spoken": self.synthesizer.drain(),
            "submitted": submitted,
        }


runtime: Optional[VoiceRuntime] = None

# Serializes pipeline access: one session at a time
session_lock = Lock()

# -----------------------------
# Metrics
# -----------------------------
metrics_lock = Lock()
request_counters = {
    "commands": 0,
    "executed": 0,
    "cancelled": 0,
    "errors": 0,
    "total": 0,
}


async def _count(*keys: str) -> None:
    async with metrics_lock:
        for key in keys:
            request_counters[key] += 1


# -----------------------------
# Pydantic Models
# -----------------------------
class VoiceCommandRequest(BaseModel):
    transcript: str
    # Reply to the yes/no prompt; omitted = nothing heard
    confirmation: Optional[str] = None


class ParseRequest(BaseModel):
    text: str


# -----------------------------
# Failure envelope
# -----------------------------
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"type": f"http_{exc.status_code}", "message": str(exc.detail)}},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"[ERROR] path={request.url.path}")
    await _count("errors")
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "type": "internal_error",
                "message": str(exc) if DEBUG else "An unexpected error occurred",
            }
        },
    )


def _runtime() -> VoiceRuntime:
    if runtime is None:
        raise HTTPException(status_code=503, detail="Voice pipeline not ready")
    return runtime


# -----------------------------
# Startup
# -----------------------------
@app.on_event("startup")
async def startup():
    global runtime
    if runtime is None:
        runtime = VoiceRuntime.create(EncryptedFileContactStore.from_config())
    await runtime.directory.initialize()
    logger.info(f"✅ Voice pipeline ready, contacts={len(runtime.directory.list())}")


# -----------------------------
# API Endpoints
# -----------------------------
@app.get("/")
async def root():
    return {"message": "PesaMirror Voice API is running."}


@app.get("/health")
async def health() -> Dict[str, Any]:
    return {
        "status": "ok",
        "contacts_loaded": runtime is not None and runtime.directory.initialized,
    }


@app.get("/metrics")
async def metrics() -> Dict[str, Any]:
    async with metrics_lock:
        return request_counters.copy()


@app.post("/parse")
async def parse(request: ParseRequest):
    intent = parse_intent(request.text)
    if intent is None:
        raise HTTPException(status_code=422, detail="Unrecognized transcript")
    return {
        "intent": deep_serialize(intent),
        "description": describe_intent(intent) if intent.type.is_concrete() else None,
    }


@app.post("/voice/command")
async def voice_command(request: VoiceCommandRequest):
    rt = _runtime()
    await _count("total", "commands")
    async with session_lock:
        utterances = [request.transcript]
        if request.confirmation is not None:
            utterances.append(request.confirmation)
        rt.capture.script(utterances)

        logger.info(f"[REQUEST_START] transcript_length={len(request.transcript)}")
        await rt.session.start()
        result = rt.drain()

    if result["submitted"]:
        await _count("executed")
    elif rt.session.error_kind is not None and rt.session.error_kind.is_terminal():
        await _count("errors")
    return result


@app.post("/voice/confirm")
async def voice_confirm():
    rt = _runtime()
    await _count("total")
    async with session_lock:
        if not await rt.session.confirm():
            raise HTTPException(status_code=409, detail="No command is waiting for confirmation")
        result = rt.drain()
    await _count("executed")
    return result


@app.post("/voice/cancel")
async def voice_cancel():
    rt = _runtime()
    await _count("total", "cancelled")
    async with session_lock:
        await rt.session.cancel()
        return rt.drain()


@app.get("/voice/state")
async def voice_state():
    return _runtime().session.snapshot()


@app.get("/contacts")
async def list_contacts():
    return [deep_serialize(c) for c in _runtime().directory.list()]


@app.put("/contacts")
async def save_contact(contact: VoiceContact):
    saved = await _runtime().directory.save(contact)
    return deep_serialize(saved)


@app.delete("/contacts")
async def clear_contacts():
    await _runtime().directory.clear()
    return {"cleared": True}


@app.get("/contacts/resolve")
async def resolve_contact(q: str):
    directory = _runtime().directory
    contact = directory.resolve_contact(q)
    return {
        "query": q,
        "phone": directory.resolve_phone_or_name(q),
        "contact": deep_serialize(contact),
    }


@app.delete("/contacts/{name}")
async def delete_contact(name: str):
    if not await _runtime().directory.delete(name):
        raise HTTPException(status_code=404, detail=f"No contact named '{name}'")
    return {"deleted": name}


# -----------------------------
# Entrypoint
# -----------------------------
import os
import uvicorn

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run("API_LAYER.app:app", host="0.0.0.0", port=port, workers=1)
