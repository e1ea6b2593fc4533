"""
Tests for the contact book and recipient resolution.
"""

import json
from pathlib import Path

import pytest

from echo_wallet.core.contacts import ContactBook, ContactBookError, RecipientResolver

from .conftest import ALICE, BOB, CAROL

DAVE = "0x" + "d" * 40


class TestContactLookup:
    """find_by_name tries exact, substring, tag, then fuzzy matches."""

    def test_exact_name(self, contacts):
        """Test exact, case-insensitive name match."""
        assert contacts.find_by_name("Alice").address == ALICE

    def test_exact_nickname(self, contacts):
        """Test exact nickname match."""
        assert contacts.find_by_name("bobby").address == BOB

    def test_name_substring(self, contacts):
        """Test partial name match."""
        assert contacts.find_by_name("car").address == CAROL

    def test_tag(self, contacts):
        """Test tag match."""
        assert contacts.find_by_name("family").address == CAROL

    def test_exact_beats_substring(self, contacts):
        """Test that an exact nickname wins over a name containing the query."""
        contacts.add_contact("bobby tables", DAVE)
        assert contacts.find_by_name("bobby").address == BOB

    def test_fuzzy_match(self):
        """Test that a near miss from speech recognition still resolves."""
        book = ContactBook()
        book.add_contact("jonathan", ALICE)
        assert book.find_by_name("jonatan").address == ALICE

    def test_no_match(self, contacts):
        """Test that unrelated names do not resolve."""
        assert contacts.find_by_name("zed") is None
        assert contacts.find_by_name("") is None

    def test_find_by_address_case_insensitive(self, contacts):
        """Test address lookup ignores case."""
        assert contacts.find_by_address(ALICE.upper().replace("0X", "0x")).name == "alice"
        assert contacts.find_by_address(DAVE) is None


class TestContactBook:
    """Mutation, usage tracking and persistence."""

    def test_duplicate_address_rejected(self, contacts):
        """Test that an address can only be saved once."""
        with pytest.raises(ContactBookError):
            contacts.add_contact("alice again", ALICE)

    def test_invalid_address_rejected(self, contacts):
        """Test that malformed addresses are refused."""
        with pytest.raises(ContactBookError):
            contacts.add_contact("eve", "0x1234")

    def test_mark_used_and_frequent(self, contacts):
        """Test usage counting and frequent-contacts ordering."""
        bob = contacts.find_by_name("bob")
        alice = contacts.find_by_name("alice")
        contacts.mark_used(bob.id)
        contacts.mark_used(bob.id)
        contacts.mark_used(alice.id)

        frequent = contacts.frequent()
        assert [c.name for c in frequent] == ["bob", "alice"]
        assert frequent[0].usage_count == 2
        assert frequent[0].last_used == 1700000000.0
        assert contacts.frequent(limit=1)[0].name == "bob"

    def test_mark_used_unknown_id(self, contacts):
        """Test that unknown ids are ignored."""
        contacts.mark_used("missing")
        assert contacts.frequent() == []

    def test_update_and_remove(self, contacts):
        """Test update and removal by id."""
        carol = contacts.find_by_name("carol")
        updated = contacts.update_contact(carol.id, nickname="caz")
        assert updated.nickname == "caz"
        assert contacts.find_by_name("caz").id == carol.id

        assert contacts.remove_contact(carol.id) is True
        assert contacts.remove_contact(carol.id) is False
        assert contacts.find_by_name("carol") is None

    def test_persistence_round_trip(self, tmp_path: Path):
        """Test that contacts are saved to and loaded from JSON."""
        path = tmp_path / ".echo_wallet" / "contacts.json"
        book = ContactBook(path)
        contact = book.add_contact("alice", ALICE, nickname="ally", tags=["work"])
        book.mark_used(contact.id)

        reloaded = ContactBook(path)
        loaded = reloaded.find_by_name("ally")
        assert loaded.id == contact.id
        assert loaded.usage_count == 1
        assert loaded.tags == ["work"]

    def test_invalid_entries_skipped(self, tmp_path: Path):
        """Test that broken records are skipped while valid ones load."""
        path = tmp_path / "contacts.json"
        records = [
            {"id": "1", "name": "alice", "address": ALICE, "created_at": 1.0},
            {"id": "2", "name": "broken", "address": "nope", "created_at": 1.0},
        ]
        path.write_text(json.dumps(records), encoding="utf-8")

        book = ContactBook(path)
        assert [c.name for c in book.contacts()] == ["alice"]

    def test_unreadable_file(self, tmp_path: Path):
        """Test that a corrupt file raises ContactBookError."""
        path = tmp_path / "contacts.json"
        path.write_text("{oops", encoding="utf-8")
        with pytest.raises(ContactBookError):
            ContactBook(path)

    def test_non_list_file(self, tmp_path: Path):
        """Test that a JSON object instead of an array is refused."""
        path = tmp_path / "contacts.json"
        path.write_text("{}", encoding="utf-8")
        with pytest.raises(ContactBookError):
            ContactBook(path)


class TestRecipientResolver:
    """Address-first resolution policy."""

    def test_contact_name(self, contacts):
        """Test resolution through the contact book."""
        recipient = RecipientResolver(contacts).resolve("alice")
        assert recipient.kind == "contact"
        assert recipient.chain_address == ALICE
        assert recipient.display_name == "alice"
        assert recipient.contact_id is not None

    def test_unknown_address(self, contacts):
        """Test that an address not in the book resolves as a literal address."""
        recipient = RecipientResolver(contacts).resolve(DAVE)
        assert recipient.kind == "address"
        assert recipient.chain_address == DAVE
        assert recipient.display_name is None

    def test_known_address_uses_contact(self, contacts):
        """Test that a saved address is reported with its contact name."""
        recipient = RecipientResolver(contacts).resolve(BOB)
        assert recipient.kind == "contact"
        assert recipient.display_name == "bob"

    def test_address_not_shadowed_by_name(self, contacts):
        """Test that an address wins even if the text would also match a name."""
        contacts.add_contact("dave", CAROL.replace("c", "e"))
        recipient = RecipientResolver(contacts).resolve(f"dave {DAVE}")
        assert recipient.chain_address == DAVE

    def test_unresolvable(self, contacts):
        """Test that unknown names resolve to None."""
        assert RecipientResolver(contacts).resolve("zed") is None
        assert RecipientResolver(contacts).resolve("") is None
