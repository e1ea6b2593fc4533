"""
Shared fixtures: an in-memory contact book and recording test doubles.
"""

from typing import List, Optional, Tuple

import pytest

from echo_wallet.core.contacts import ContactBook
from echo_wallet.core.types import TransactionHandle

ALICE = "0x742d35cc6634c0532925a3b844bc454e4438f44e"
BOB = "0x" + "b" * 40
CAROL = "0x" + "c" * 40


class RecordingSpeaker:
    """Speaker double that keeps everything it was asked to say."""

    def __init__(self):
        self.spoken: List[str] = []

    def speak(self, text: str, options=None) -> None:
        self.spoken.append(text)

    @property
    def last(self) -> Optional[str]:
        return self.spoken[-1] if self.spoken else None


class RecordingExecutor:
    """Transfer executor double that records calls and returns a fixed handle."""

    def __init__(self, fail: bool = False):
        self.calls: List[Tuple[str, str]] = []
        self.fail = fail

    def execute(self, recipient_address: str, amount: str) -> TransactionHandle:
        self.calls.append((recipient_address, amount))
        if self.fail:
            raise RuntimeError("nonce too low: internal signer detail")
        return TransactionHandle(hash="0x" + "1234" * 16, to=recipient_address, amount=amount)


class CountingListener:
    def __init__(self):
        self.armed = 0

    def arm(self) -> None:
        self.armed += 1


@pytest.fixture
def contacts() -> ContactBook:
    """Contact book with alice, bob (nickname bobby) and carol (tagged family)."""
    book = ContactBook(clock=lambda: 1700000000.0)
    book.add_contact("alice", ALICE)
    book.add_contact("bob", BOB, nickname="bobby")
    book.add_contact("carol", CAROL, tags=["family"])
    return book
