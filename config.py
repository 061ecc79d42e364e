import os
from dotenv import load_dotenv

# Load environment variables from .env
load_dotenv()

# Fixed storage identifier for the contact list
CONTACTS_STORAGE_ID = "pesamirror_voice_contacts"

# Optional vars (with defaults)
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
PORT = int(os.getenv("PORT", "8000"))

VOICE_LOCALE = os.getenv("VOICE_LOCALE", "en-US")

CONTACTS_STORE_PATH = os.getenv(
    "CONTACTS_STORE_PATH", os.path.join("data", f"{CONTACTS_STORAGE_ID}.enc")
)
CONTACTS_KEY_PATH = os.getenv(
    "CONTACTS_KEY_PATH", os.path.join("data", f"{CONTACTS_STORAGE_ID}.key")
)

# Fernet key; when unset a key file is generated at CONTACTS_KEY_PATH
CONTACTS_KEY = os.getenv("CONTACTS_KEY") or None
