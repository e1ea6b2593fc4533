"""
Contact book and recipient resolution.

The contact book is a small JSON-backed address book with forgiving lookup:
exact name, exact nickname, substring matches, tags, and finally a fuzzy
match for names that speech recognition got slightly wrong.

The resolver turns a spoken recipient reference into a concrete chain
address. A literal hex address always wins over a name lookup.
"""

import json
import logging
import time
import uuid
from pathlib import Path
from typing import Callable, List, Optional, Union

from pydantic import ValidationError
from rapidfuzz import fuzz

from .lexicon import tokenize_normalize
from .types import ADDRESS_PATTERN, Contact, ResolvedRecipient

logger = logging.getLogger(__name__)

# Minimum fuzz.ratio similarity (0-1) for a fuzzy name match
FUZZY_THRESHOLD = 0.8


class ContactBookError(Exception):
    """Raised when the contact book cannot be read, written or updated."""

    pass


class ContactBook:
    """
    In-memory contact list, optionally persisted to a JSON file.

    The file holds a JSON array of contact records. Without a path the book
    lives only in memory.
    """

    def __init__(
        self,
        path: Optional[Union[str, Path]] = None,
        fuzzy_threshold: float = FUZZY_THRESHOLD,
        clock: Callable[[], float] = time.time,
    ):
        self.path = Path(path) if path else None
        self.fuzzy_threshold = fuzzy_threshold
        self._clock = clock
        self._contacts: List[Contact] = self._load()

    def _load(self) -> List[Contact]:
        if self.path is None or not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ContactBookError(f"Failed to read contact book '{self.path}': {e}")
        if not isinstance(data, list):
            raise ContactBookError(f"Contact book '{self.path}' must contain a JSON array")

        contacts = []
        for item in data:
            try:
                contacts.append(Contact.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Skipping invalid contact entry in {self.path}: {e.error_count()} error(s)")
        return contacts

    def save(self) -> None:
        """Write the contact list back to its file (no-op without a path)."""
        if self.path is None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            payload = [c.model_dump() for c in self._contacts]
            self.path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
        except OSError as e:
            raise ContactBookError(f"Failed to write contact book '{self.path}': {e}")

    def contacts(self) -> List[Contact]:
        return list(self._contacts)

    def add_contact(self, name: str, address: str, nickname: Optional[str] = None, tags: Optional[List[str]] = None) -> Contact:
        """
        Add a new contact and persist the book.

        Raises:
            ContactBookError: If the record is invalid or the address is already saved
        """
        if self.find_by_address(address):
            raise ContactBookError(f"A contact with address {address} already exists")
        try:
            contact = Contact(
                id=uuid.uuid4().hex,
                name=name.strip(),
                address=address.strip(),
                nickname=nickname.strip() if nickname else None,
                tags=tags or [],
                created_at=self._clock(),
            )
        except ValidationError as e:
            raise ContactBookError(f"Invalid contact: {e}")

        self._contacts.append(contact)
        self.save()
        return contact

    def remove_contact(self, contact_id: str) -> bool:
        before = len(self._contacts)
        self._contacts = [c for c in self._contacts if c.id != contact_id]
        removed = len(self._contacts) != before
        if removed:
            self.save()
        return removed

    def update_contact(self, contact_id: str, **updates) -> Optional[Contact]:
        for index, contact in enumerate(self._contacts):
            if contact.id == contact_id:
                try:
                    updated = Contact.model_validate({**contact.model_dump(), **updates, "id": contact.id})
                except ValidationError as e:
                    raise ContactBookError(f"Invalid contact update: {e}")
                self._contacts[index] = updated
                self.save()
                return updated
        return None

    def get(self, contact_id: str) -> Optional[Contact]:
        return next((c for c in self._contacts if c.id == contact_id), None)

    def find_by_name(self, query: str) -> Optional[Contact]:
        """
        Find a contact by name, nickname or tag.

        Tried in order, first hit wins:
        1. exact name
        2. exact nickname
        3. name contains the query
        4. nickname contains the query
        5. a tag contains the query
        6. best fuzzy name/nickname match at or above the threshold

        Args:
            query: Spoken name

        Returns:
            Matching contact or None
        """
        q = " ".join(tokenize_normalize(query))
        if not q:
            return None

        def lower(value: Optional[str]) -> str:
            return " ".join(tokenize_normalize(value or ""))

        checks = [
            lambda c: lower(c.name) == q,
            lambda c: bool(c.nickname) and lower(c.nickname) == q,
            lambda c: q in lower(c.name),
            lambda c: bool(c.nickname) and q in lower(c.nickname),
            lambda c: any(q in lower(tag) for tag in c.tags),
        ]
        for check in checks:
            match = next((c for c in self._contacts if check(c)), None)
            if match:
                return match

        best: Optional[Contact] = None
        best_score = 0.0
        for contact in self._contacts:
            for candidate in (contact.name, contact.nickname):
                if not candidate:
                    continue
                score = fuzz.ratio(q, lower(candidate)) / 100.0
                if score > best_score:
                    best, best_score = contact, score

        if best is not None and best_score >= self.fuzzy_threshold:
            logger.debug(f"Fuzzy contact match '{query}' -> '{best.name}' ({best_score:.2f})")
            return best
        return None

    def find_by_address(self, address: str) -> Optional[Contact]:
        target = (address or "").strip().lower()
        return next((c for c in self._contacts if c.address.lower() == target), None)

    def mark_used(self, contact_id: str) -> None:
        """Increment usage count and stamp last use; unknown ids are ignored."""
        for index, contact in enumerate(self._contacts):
            if contact.id == contact_id:
                self._contacts[index] = contact.model_copy(update={"usage_count": contact.usage_count + 1, "last_used": self._clock()})
                self.save()
                return

    def frequent(self, limit: int = 5) -> List[Contact]:
        """Contacts used at least once, most used first."""
        used = [c for c in self._contacts if c.usage_count > 0]
        return sorted(used, key=lambda c: c.usage_count, reverse=True)[:limit]


class RecipientResolver:
    """
    Maps a recipient reference to a concrete chain address.

    Literal addresses are checked first: a valid address is unambiguous and
    must not be shadowed by an accidental name match.
    """

    def __init__(self, contacts: ContactBook):
        self.contacts = contacts

    def resolve(self, reference: str) -> Optional[ResolvedRecipient]:
        if not reference:
            return None

        address_match = ADDRESS_PATTERN.search(reference)
        if address_match:
            address = address_match.group(0)
            known = self.contacts.find_by_address(address)
            if known:
                return ResolvedRecipient(kind="contact", chain_address=known.address, display_name=known.name, contact_id=known.id)
            return ResolvedRecipient(kind="address", chain_address=address)

        contact = self.contacts.find_by_name(reference)
        if contact:
            return ResolvedRecipient(kind="contact", chain_address=contact.address, display_name=contact.name, contact_id=contact.id)
        return None
