# tests/conftest.py
import sys
from pathlib import Path

# ---------------------------------------------------------
# Ensure project root is on PYTHONPATH BEFORE app imports
# ---------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# ---------------------------------------------------------
# Now safe to import project modules
# ---------------------------------------------------------
import asyncio

import pytest

from models.contact import ContactType, VoiceContact
from services.contact_directory import ContactDirectory
from services.contact_store import InMemoryContactStore


DAVID = VoiceContact(name="David", type=ContactType.MOBILE, phone="0712345678")


def make_directory(*contacts: VoiceContact) -> ContactDirectory:
    """Initialized directory over an in-memory store."""
    directory = ContactDirectory(InMemoryContactStore(list(contacts)))
    asyncio.run(directory.initialize())
    return directory


@pytest.fixture
def david_directory() -> ContactDirectory:
    return make_directory(DAVID)
