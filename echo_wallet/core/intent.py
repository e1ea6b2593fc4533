"""
Intent parsing for normalized voice commands.

Classification is keyword containment over an ordered table: the first
intent whose phrases occur in the utterance wins. Transfer utterances are
then matched against a second ordered table of surface patterns to pull out
the amount and the recipient in one pass. Both tables are plain data, so new
phrasings are added without touching control flow.

The parser never resolves recipients; it only extracts the literal text.
"""

import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Pattern, Tuple

from .amount import AMOUNT_REGEX
from .types import (
    ADDRESS_PATTERN,
    TX_HASH_PATTERN,
    AddressReference,
    CheckBalanceIntent,
    ContactReference,
    ContactsQueryIntent,
    CreateWalletIntent,
    FreeTextIntent,
    ImportWalletIntent,
    ParsedIntent,
    RecipientReference,
    SwitchNetworkIntent,
    TransactionStatusIntent,
    TransferIntent,
)
from .timing import timer

TRANSFER_VERBS = ("transfer", "send", "pay")

# Words that carry no recipient information at either end of a name
RECIPIENT_FILLERS = {"please", "now", "thanks", "thank", "you", "right", "away", "the", "my", "eth", "it", "for", "to", "me"}

_AMOUNT = rf"(?P<amount>{AMOUNT_REGEX})"
_VERB = r"(?:transfer|send|pay)"
_TOKEN = r"(?:\s*eth\b)?"
_ADDRESS = r"0x[0-9a-f]{40}"
_NAME = r"[a-z][a-z'\-]*(?:\s+[a-z][a-z'\-]*)*"
_RECIPIENT = rf"(?P<recipient>{_ADDRESS}|{_NAME})"


@dataclass(frozen=True)
class IntentRule:
    """Keyword containment rule for one intent class."""

    name: str
    phrases: Tuple[str, ...]
    build: Callable[[str], ParsedIntent]


@dataclass(frozen=True)
class TransferPattern:
    """A transfer phrasing and the fields it can yield."""

    name: str
    pattern: Pattern[str]


def _network_target(text: str) -> SwitchNetworkIntent:
    return SwitchNetworkIntent(target="mainnet" if "mainnet" in text else "sepolia")


def _transaction_status(text: str) -> TransactionStatusIntent:
    match = TX_HASH_PATTERN.search(text)
    return TransactionStatusIntent(hash=match.group(0) if match else None)


# Ordered: wallet lifecycle, balance, contacts, transfer, transaction status, network.
INTENT_RULES: List[IntentRule] = [
    IntentRule("create_wallet", ("create wallet", "new wallet", "generate wallet"), lambda t: CreateWalletIntent()),
    IntentRule(
        "import_wallet",
        ("import wallet", "restore wallet", "recover wallet", "sign in wallet", "biometric", "fingerprint", "face id", "face unlock"),
        lambda t: ImportWalletIntent(),
    ),
    IntentRule("balance", ("balance",), lambda t: CheckBalanceIntent()),
    IntentRule("contacts", ("contact", "address book"), lambda t: ContactsQueryIntent(raw=t)),
    IntentRule("transfer", TRANSFER_VERBS, lambda t: extract_transfer(t)),
    IntentRule("transaction_status", ("transaction status", "check transaction", "track transaction"), _transaction_status),
    IntentRule("switch_network", ("switch network", "change network", "mainnet", "testnet"), _network_target),
]

# Ordered: the first pattern that matches wins.
TRANSFER_PATTERNS: List[TransferPattern] = [
    # "transfer 0.1 eth to alice"
    TransferPattern("verb_amount_to_recipient", re.compile(rf"\b{_VERB}\s+{_AMOUNT}{_TOKEN}\s+to\s+{_RECIPIENT}")),
    # "send to alice 0.1 eth"
    TransferPattern("verb_to_recipient_amount", re.compile(rf"\b{_VERB}(?:\s+eth)?\s+to\s+{_RECIPIENT}\s+{_AMOUNT}")),
    # "to alice transfer 0.1 eth"
    TransferPattern("to_recipient_verb_amount", re.compile(rf"\bto\s+{_RECIPIENT}\s+{_VERB}\s+{_AMOUNT}")),
    # "pay alice 0.1 eth"
    TransferPattern("verb_recipient_amount", re.compile(rf"\b{_VERB}\s+(?!to\b){_RECIPIENT}\s+{_AMOUNT}")),
    # "transfer 0.1 eth"
    TransferPattern("amount_only", re.compile(rf"\b{_VERB}\b.*?{_AMOUNT}")),
    # "send to alice"
    TransferPattern("recipient_only", re.compile(rf"\b{_VERB}(?:\s+eth)?\s+to\s+{_RECIPIENT}")),
]


def clean_recipient(text: str) -> Optional[str]:
    """
    Trim filler words from both ends of a spoken recipient name.

    Returns:
        Cleaned name, or None if nothing meaningful is left
    """
    words = re.sub(r"[^\w\s'\-]", " ", text or "").split()
    while words and words[-1] in RECIPIENT_FILLERS:
        words.pop()
    while words and words[0] in RECIPIENT_FILLERS:
        words.pop(0)
    return " ".join(words) or None


def to_recipient_reference(text: str) -> Optional[RecipientReference]:
    """
    Classify a recipient string as a literal address or a contact name.
    """
    address = ADDRESS_PATTERN.search(text or "")
    if address:
        return AddressReference(address=address.group(0))
    name = clean_recipient(text)
    if not name:
        return None
    return ContactReference(name=name)


def extract_transfer(text: str) -> TransferIntent:
    """
    Pull amount and recipient out of a transfer utterance.

    Returns:
        TransferIntent with whatever the first matching pattern yielded
    """
    for rule in TRANSFER_PATTERNS:
        match = rule.pattern.search(text)
        if not match:
            continue
        groups: Dict[str, Optional[str]] = match.groupdict()
        recipient = to_recipient_reference(groups["recipient"]) if groups.get("recipient") else None
        amount = groups["amount"].replace(",", "") if groups.get("amount") else None
        if groups.get("recipient") and recipient is None:
            # Only fillers where a name should be; try the next phrasing
            continue
        return TransferIntent(amount=amount, recipient_ref=recipient)
    return TransferIntent()


@timer
def parse(normalized: str) -> ParsedIntent:
    """
    Classify a normalized utterance.

    Args:
        normalized: Output of the normalizer

    Returns:
        The first matching intent, or FreeTextIntent when nothing matches
    """
    text = (normalized or "").strip()
    for rule in INTENT_RULES:
        if any(phrase in text for phrase in rule.phrases):
            return rule.build(text)
    return FreeTextIntent(raw=text)

