# FILE: services/contact_directory.py
"""
In-memory mirror of the saved voice contacts, with fuzzy name resolution.

Contract:
- `initialize()` must be awaited once before resolution is meaningful.
  Until then reads see an empty directory; callers never block on it.
  Mutations load the store first so they never overwrite unseen entries.
- Mutations upsert in memory, then persist the WHOLE list via the store.
- Concurrent saves are not serialized against each other (last write wins).
"""

import asyncio
import logging
from typing import Iterable, List, Optional

from core.errors import ContactStoreError
from models.contact import ContactType, VoiceContact
from services.contact_store import ContactStore
from services.utils import is_phone_number, normalize_phone, strip_whitespace

logger = logging.getLogger("pesamirror.contact_directory")


def _normalize_for_storage(contact: VoiceContact) -> VoiceContact:
    ctype = contact.effective_type
    if ctype.is_phone():
        phone = normalize_phone(contact.phone)
    else:
        phone = strip_whitespace(contact.phone)

    account = contact.accountNumber.strip() if contact.accountNumber else None
    return VoiceContact(
        name=contact.name,
        type=ctype,
        phone=phone,
        accountNumber=account or None,
    )


def match_contact(contacts: Iterable[VoiceContact], query: str) -> Optional[VoiceContact]:
    """
    Staged name matching; the first contact (insertion order) wins at the
    first stage that matches anything:
      1. exact name (case-insensitive)
      2. name starts with the query
      3. every query word prefixes some word of the name ("john" ~ "John Doe")
    """
    lower = query.strip().lower()
    if not lower:
        return None
    candidates = list(contacts)

    for c in candidates:
        if c.name.lower() == lower:
            return c

    for c in candidates:
        if c.name.lower().startswith(lower):
            return c

    query_words = lower.split()
    for c in candidates:
        name_words = c.name.lower().split()
        if all(any(nw.startswith(w) for nw in name_words) for w in query_words):
            return c

    return None


class ContactDirectory:
    def __init__(self, store: ContactStore):
        self._store = store
        self._contacts: Optional[List[VoiceContact]] = None
        self._init_lock = asyncio.Lock()

    # -----------------------------
    # Lifecycle
    # -----------------------------
    @property
    def initialized(self) -> bool:
        return self._contacts is not None

    async def initialize(self) -> None:
        """Load the store into memory exactly once."""
        if self._contacts is not None:
            return
        async with self._init_lock:
            if self._contacts is not None:
                return
            try:
                loaded = await self._store.load()
            except ContactStoreError:
                logger.exception("[INIT_FAILED] starting with an empty directory")
                loaded = []
            self._contacts = list(loaded)
            logger.info(f"[INIT] contacts={len(self._contacts)}")

    # -----------------------------
    # Queries
    # -----------------------------
    def list(self) -> List[VoiceContact]:
        return list(self._contacts or [])

    def get(self, name: str) -> Optional[VoiceContact]:
        lower = name.strip().lower()
        for c in self._contacts or []:
            if c.name.lower() == lower:
                return c
        return None

    def resolve_phone_or_name(self, query: str) -> Optional[str]:
        """
        Resolve a spoken target to a phone number.
        Numeric input bypasses the directory; names only match
        mobile/pochi/legacy contacts, never till or paybill ones.
        """
        cleaned = query.strip()
        if is_phone_number(cleaned):
            return normalize_phone(cleaned)

        phone_contacts = (c for c in self.list() if c.is_phone_target())
        contact = match_contact(phone_contacts, cleaned)
        return contact.phone if contact else None

    def resolve_contact(self, query: str) -> Optional[VoiceContact]:
        """
        Resolve a spoken name to the full contact record, any type.
        A phone-shaped query resolves to an unsaved mobile record.
        """
        cleaned = query.strip()
        if is_phone_number(cleaned):
            phone = normalize_phone(cleaned)
            return VoiceContact(name=phone, type=ContactType.MOBILE, phone=phone)
        return match_contact(self.list(), cleaned)

    # -----------------------------
    # Mutations
    # -----------------------------
    async def _persist(self, contacts: List[VoiceContact]) -> None:
        await self._store.save(contacts)
        self._contacts = contacts

    async def save(self, contact: VoiceContact) -> VoiceContact:
        await self.initialize()
        entry = _normalize_for_storage(contact)
        lower = entry.name.lower()

        updated = self.list()
        index = next(
            (i for i, c in enumerate(updated) if c.name.lower() == lower), None
        )
        if index is None:
            updated.append(entry)
        else:
            updated[index] = entry

        await self._persist(updated)
        logger.info(
            f"[CONTACT_SAVED] type={entry.effective_type.value}, "
            f"{'updated' if index is not None else 'created'}"
        )
        return entry

    async def delete(self, name: str) -> bool:
        await self.initialize()
        lower = name.strip().lower()
        current = self.list()
        remaining = [c for c in current if c.name.lower() != lower]
        await self._persist(remaining)
        return len(remaining) != len(current)

    async def clear(self) -> None:
        await self._store.clear()
        self._contacts = []
        logger.info("[CONTACTS_CLEARED]")

