"""
Type definitions for Echo Wallet voice commands.

This module defines the structured records that flow through a voice turn:
transcripts, parsed intents, recipient references, amount validation results
and the transfer dialogue state.
"""

import re
from decimal import Decimal
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

ADDRESS_PATTERN = re.compile(r"0x[0-9a-fA-F]{40}")
TX_HASH_PATTERN = re.compile(r"0x[0-9a-fA-F]{64}")


class Transcript(BaseModel):
    """
    Result of automatic speech recognition.
    """

    text: str = Field(..., description="Transcribed text")
    lang_hint: str = Field(default="auto", description="Detected or hinted language code")
    confidence: float = Field(default=1.0, ge=0.0, le=1.0, description="Recognition confidence")


# --- Recipient references ---


class ContactReference(BaseModel):
    """A recipient named by (part of) a contact name, nickname or tag."""

    kind: Literal["contact"] = "contact"
    name: str = Field(..., min_length=1, description="Literal name as spoken")


class AddressReference(BaseModel):
    """A recipient given as a literal chain address."""

    kind: Literal["address"] = "address"
    address: str = Field(..., pattern=r"^0x[0-9a-fA-F]{40}$", description="Hex address (0x + 40 hex chars)")


RecipientReference = Annotated[Union[ContactReference, AddressReference], Field(discriminator="kind")]


class ResolvedRecipient(BaseModel):
    """
    A recipient reference mapped to a concrete chain address.

    Attributes:
        kind: Whether the recipient came from the contact book or a literal address
        chain_address: Destination address
        display_name: Contact name, when known
        contact_id: Contact id, used to record usage after a transfer
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["contact", "address"]
    chain_address: str = Field(..., pattern=r"^0x[0-9a-fA-F]{40}$")
    display_name: Optional[str] = None
    contact_id: Optional[str] = None


# --- Parsed intents ---


class CreateWalletIntent(BaseModel):
    kind: Literal["create_wallet"] = "create_wallet"


class ImportWalletIntent(BaseModel):
    kind: Literal["import_wallet"] = "import_wallet"


class CheckBalanceIntent(BaseModel):
    kind: Literal["balance"] = "balance"


class TransferIntent(BaseModel):
    """
    A transfer request, possibly partial.

    The parser fills whatever it could extract from a single utterance; the
    dialogue asks for the rest.
    """

    kind: Literal["transfer"] = "transfer"
    amount: Optional[str] = Field(default=None, description="Amount as spoken (digits and '.')")
    recipient_ref: Optional[RecipientReference] = Field(default=None, description="Unresolved recipient reference")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_complete(self) -> bool:
        return bool(self.amount) and self.recipient_ref is not None


class ContactsQueryIntent(BaseModel):
    kind: Literal["contacts"] = "contacts"
    raw: str


class TransactionStatusIntent(BaseModel):
    kind: Literal["transaction_status"] = "transaction_status"
    hash: Optional[str] = Field(default=None, pattern=r"^0x[0-9a-fA-F]{64}$")


class SwitchNetworkIntent(BaseModel):
    kind: Literal["switch_network"] = "switch_network"
    target: Literal["mainnet", "sepolia"] = "sepolia"


class FreeTextIntent(BaseModel):
    kind: Literal["text_input"] = "text_input"
    raw: str


ParsedIntent = Annotated[
    Union[
        CreateWalletIntent,
        ImportWalletIntent,
        CheckBalanceIntent,
        TransferIntent,
        ContactsQueryIntent,
        TransactionStatusIntent,
        SwitchNetworkIntent,
        FreeTextIntent,
    ],
    Field(discriminator="kind"),
]


# --- Amount validation ---


class AmountRejection(str, Enum):
    """Why an amount was refused. Each code has its own spoken reason."""

    MISSING = "missing"
    INVALID = "invalid"
    NOT_POSITIVE = "not_positive"
    BELOW_MINIMUM = "below_minimum"
    ABOVE_MAXIMUM = "above_maximum"


class AmountAccepted(BaseModel):
    valid: Literal[True] = True
    canonical: str = Field(..., description="Canonical decimal string, at most 6 fractional digits")


class AmountRejected(BaseModel):
    valid: Literal[False] = False
    code: AmountRejection
    reason: str = Field(..., description="User-facing reason sentence")


AmountCheck = Union[AmountAccepted, AmountRejected]


class DialogueLimits(BaseModel):
    """
    Retry and range limits for a transfer dialogue.
    """

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1, description="Failures allowed per step before aborting")
    min_amount: Decimal = Field(default=Decimal("0.000001"), gt=0, description="Smallest transferable amount")
    max_amount: Decimal = Field(default=Decimal("1000"), gt=0, description="Largest transferable amount")

    @model_validator(mode="after")
    def _check_range(self) -> "DialogueLimits":
        if self.min_amount > self.max_amount:
            raise ValueError("min_amount must not exceed max_amount")
        return self


# --- Dialogue state ---


class DialogueStep(str, Enum):
    IDLE = "idle"
    AWAITING_RECIPIENT = "awaiting_recipient"
    AWAITING_AMOUNT = "awaiting_amount"
    AWAITING_CONFIRMATION = "awaiting_confirmation"


class TransferDialogueState(BaseModel):
    """
    Immutable snapshot of one transfer attempt.

    Transitions never mutate a state; they build the next one. ``version``
    grows with every transition so delayed callbacks can tell whether the
    state they were scheduled against is still current.
    """

    model_config = ConfigDict(frozen=True)

    active: bool = False
    step: DialogueStep = DialogueStep.IDLE
    recipient: Optional[ResolvedRecipient] = None
    amount: str = ""
    attempt_count: int = Field(default=0, ge=0)
    version: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _check_invariants(self) -> "TransferDialogueState":
        if self.active != (self.step != DialogueStep.IDLE):
            raise ValueError(f"active={self.active} is inconsistent with step={self.step.value}")
        if self.step == DialogueStep.AWAITING_CONFIRMATION and (self.recipient is None or not self.amount):
            raise ValueError("awaiting_confirmation requires both a recipient and an amount")
        if self.step == DialogueStep.IDLE and (self.recipient is not None or self.amount or self.attempt_count):
            raise ValueError("idle state must not carry recipient, amount or attempts")
        return self

    @classmethod
    def idle(cls, version: int = 0) -> "TransferDialogueState":
        return cls(version=version)


class TransferOrder(BaseModel):
    """A confirmed transfer handed to the executor."""

    model_config = ConfigDict(frozen=True)

    recipient: ResolvedRecipient
    amount: str


# --- Contacts and transactions ---


class Contact(BaseModel):
    """
    An address book entry.
    """

    id: str = Field(..., description="Stable contact id")
    name: str = Field(..., min_length=1)
    address: str = Field(..., pattern=r"^0x[0-9a-fA-F]{40}$")
    nickname: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    created_at: float = Field(..., description="Creation time (unix seconds)")
    last_used: Optional[float] = None
    usage_count: int = Field(default=0, ge=0)


class TransactionHandle(BaseModel):
    """Result of handing a transfer to the executor."""

    hash: str
    to: str
    amount: str
    network: str = "sepolia"
    status: Literal["pending", "confirmed", "failed"] = "pending"


class WalletInfo(BaseModel):
    address: str
    network: str = "sepolia"
