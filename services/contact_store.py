# FILE: services/contact_store.py
"""
Persistence for the voice contact list.

Stores only ever see the WHOLE list: the directory upserts in memory and
then hands the complete collection back for saving.
"""

import asyncio
import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

from cryptography.fernet import Fernet, InvalidToken
from pydantic import ValidationError

from config import CONTACTS_KEY, CONTACTS_KEY_PATH, CONTACTS_STORE_PATH
from core.errors import ContactStoreError
from models.contact import VoiceContact

logger = logging.getLogger("pesamirror.contact_store")


class ContactStore(ABC):
    """
    Base contract for contact persistence.
    No matching, no normalization here.
    """

    @abstractmethod
    async def load(self) -> List[VoiceContact]:
        pass

    @abstractmethod
    async def save(self, contacts: List[VoiceContact]) -> None:
        pass

    @abstractmethod
    async def clear(self) -> None:
        pass


class InMemoryContactStore(ContactStore):
    def __init__(self, contacts: Optional[List[VoiceContact]] = None):
        self._contacts: List[VoiceContact] = list(contacts or [])

    async def load(self) -> List[VoiceContact]:
        return list(self._contacts)

    async def save(self, contacts: List[VoiceContact]) -> None:
        self._contacts = list(contacts)

    async def clear(self) -> None:
        self._contacts = []


def _encode(contacts: List[VoiceContact]) -> bytes:
    return json.dumps(
        [c.model_dump(mode="json", exclude_none=True) for c in contacts]
    ).encode("utf-8")


def _decode(raw: bytes) -> List[VoiceContact]:
    try:
        data = json.loads(raw.decode("utf-8"))
        return [VoiceContact.model_validate(item) for item in data]
    except (ValueError, TypeError, ValidationError) as e:
        raise ContactStoreError(f"Corrupt contact list: {e}") from e


class EncryptedFileContactStore(ContactStore):
    """
    Fernet-encrypted JSON file.

    The key comes from CONTACTS_KEY, or is generated once and kept in a key
    file beside the data. Plain JSON files written by older versions are
    migrated to the encrypted format on first load.
    """

    def __init__(self, path: str, key_path: str, key: Optional[str] = None):
        self.path = Path(path)
        self.key_path = Path(key_path)
        self._configured_key = key.encode("ascii") if key else None
        self._key = self._configured_key

    @classmethod
    def from_config(cls) -> "EncryptedFileContactStore":
        return cls(CONTACTS_STORE_PATH, CONTACTS_KEY_PATH, CONTACTS_KEY)

    # -----------------------------
    # Key management
    # -----------------------------
    def _fernet(self, create: bool) -> Optional[Fernet]:
        if self._key is None and self.key_path.exists():
            self._key = self.key_path.read_bytes().strip()
        if self._key is None:
            if not create:
                return None
            self._key = Fernet.generate_key()
            self.key_path.parent.mkdir(parents=True, exist_ok=True)
            self.key_path.write_bytes(self._key)
            os.chmod(self.key_path, 0o600)
            logger.info(f"[KEY_CREATED] path={self.key_path}")
        try:
            return Fernet(self._key)
        except ValueError as e:
            raise ContactStoreError(f"Invalid contacts key: {e}") from e

    # -----------------------------
    # Sync I/O (run in a worker thread)
    # -----------------------------
    def _load_sync(self) -> List[VoiceContact]:
        if not self.path.exists():
            return []
        raw = self.path.read_bytes()
        if not raw.strip():
            return []

        # Legacy plain JSON list
        if raw.lstrip().startswith(b"["):
            contacts = _decode(raw)
            logger.info(f"[MIGRATE_PLAIN] contacts={len(contacts)}")
            self._save_sync(contacts)
            return contacts

        fernet = self._fernet(create=False)
        if fernet is None:
            raise ContactStoreError("Encrypted contact list found but no key is available")
        try:
            plain = fernet.decrypt(raw.strip())
        except InvalidToken as e:
            raise ContactStoreError("Could not decrypt contact list") from e
        return _decode(plain)

    def _save_sync(self, contacts: List[VoiceContact]) -> None:
        fernet = self._fernet(create=True)
        token = fernet.encrypt(_encode(contacts))
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_bytes(token)
        os.replace(tmp, self.path)

    def _clear_sync(self) -> None:
        if self.path.exists():
            self.path.unlink()
        # A generated key goes with the data; a configured one stays
        if self._configured_key is None and self.key_path.exists():
            self.key_path.unlink()
        self._key = self._configured_key

    # -----------------------------
    # Async contract
    # -----------------------------
    async def load(self) -> List[VoiceContact]:
        return await asyncio.to_thread(self._load_sync)

    async def save(self, contacts: List[VoiceContact]) -> None:
        await asyncio.to_thread(self._save_sync, list(contacts))

    async def clear(self) -> None:
        await asyncio.to_thread(self._clear_sync)
