"""
Spoken message rendering for Echo Wallet.

Every sentence the assistant says comes from a template keyed by name, so
the dialogue and the session never build user-facing text ad hoc. Three
profiles are supported:
- Short: terse prompts for experienced users
- Standard: the default wording
- Verbose: standard wording plus a reminder of how to leave the dialogue
"""

from typing import Dict, Optional

from .types import ResolvedRecipient

CANCEL_HINT = 'You can say "cancel" at any time to exit.'

STANDARD_TEMPLATES: Dict[str, str] = {
    "transfer_started": "Starting transfer flow. Please say the contact name.",
    "transfer_started_with_amount": "Starting a transfer of {amount} ETH. Please say the contact name.",
    "recipient_confirmed": "Recipient: {recipient}. Please specify the transfer amount now.",
    "recipient_not_found": "I could not find a contact named {name}. Please say the contact name or a wallet address.",
    "recipient_reprompt": "Please say the contact name or a wallet address.",
    "amount_prompt": "Please specify the transfer amount now.",
    "amount_reprompt": "Could not understand the amount. Please state a numeric value such as 0.1 or fifty.",
    "amount_rejected": "{reason} Please specify the transfer amount again.",
    "summary": 'Please confirm the transfer: send {amount} ETH to {recipient}. Say "confirm" to execute the transfer or "cancel" to exit.',
    "confirm_reprompt": 'Please clearly say "confirm" to execute the transfer or "cancel" to exit.',
    "cancelled": "Transfer cancelled. {reason}",
    "executing": "Executing the transfer. Please wait...",
    "transfer_success": "Transfer submitted. Transaction hash {hash}.",
    "transfer_failed": "The transfer could not be completed. Please try again later.",
    "not_understood": "Sorry, I did not understand that command.",
    "wallet_required": "Please create or import a wallet first.",
    "wallet_created": "Your new wallet is ready. Address {address}.",
    "wallet_imported": "Wallet imported. Address {address}.",
    "wallet_failed": "The wallet operation failed. Please try again.",
    "wallet_unavailable": "Wallet features are not available right now.",
    "balance_result": "Your balance is {balance} ETH.",
    "network_switched": "Switched to {network}.",
    "tx_status": "Transaction status: {status}, amount: {amount} ETH.",
    "tx_not_found": "Transaction not found.",
    "tx_hash_missing": "Please provide the transaction hash.",
    "contacts_empty": "Your contact list is empty.",
    "contacts_intro": "You have {count} saved contacts.",
    "contact_entry": "{name}, address {address}.",
    "frequent_contacts": "Your frequent contacts are: {names}.",
}

SHORT_TEMPLATES: Dict[str, str] = {
    "transfer_started": "Who is the recipient?",
    "transfer_started_with_amount": "{amount} ETH. Who is the recipient?",
    "recipient_confirmed": "{recipient}. How much?",
    "recipient_not_found": "No contact named {name}. Who is the recipient?",
    "recipient_reprompt": "Who is the recipient?",
    "amount_prompt": "How much?",
    "amount_reprompt": "Say a number, such as 0.1.",
    "amount_rejected": "{reason}",
    "summary": "Send {amount} ETH to {recipient}? Say confirm or cancel.",
    "confirm_reprompt": "Say confirm or cancel.",
    "executing": "Sending.",
    "transfer_success": "Sent. Hash {hash}.",
}

# Prompts that wait for the user to say something in an active dialogue
DIALOGUE_PROMPTS = {
    "transfer_started",
    "transfer_started_with_amount",
    "recipient_confirmed",
    "recipient_not_found",
    "recipient_reprompt",
    "amount_prompt",
    "amount_reprompt",
    "amount_rejected",
}

ABORT_REASONS: Dict[str, str] = {
    "user_cancelled": "",
    "declined": "The transfer was not confirmed.",
    "attempts_exceeded": "Too many unsuccessful attempts.",
    "session_cancelled": "",
}


def format_address_for_speech(address: str) -> str:
    """Shorten a hex address or hash for speech: 0x1234...abcd."""
    if not address or len(address) < 12:
        return address or ""
    return f"{address[:6]}...{address[-4:]}"


def describe_recipient(recipient: ResolvedRecipient) -> str:
    """Contact name when known, otherwise the shortened address."""
    return recipient.display_name or format_address_for_speech(recipient.chain_address)


class MessageRenderer:
    """
    Renders spoken sentences from named templates.

    Supports three profiles:
    - Short: terse prompts, falls back to standard wording where no short form exists
    - Standard: default wording
    - Verbose: standard wording, dialogue prompts end with the cancel hint
    """

    def __init__(self, profile: str = "standard"):
        self.profiles = {
            "short": self._render_short,
            "std": self._render_standard,
            "standard": self._render_standard,
            "verbose": self._render_verbose,
        }
        if profile not in self.profiles:
            raise ValueError(f"Unsupported profile: {profile}. Available: {list(self.profiles.keys())}")
        self.profile = profile

    def render(self, key: str, **params: object) -> str:
        """
        Render one message.

        Args:
            key: Template name
            **params: Values for the template placeholders

        Returns:
            Sentence to speak

        Raises:
            KeyError: If the template name is unknown
        """
        if key not in STANDARD_TEMPLATES:
            raise KeyError(f"Unknown message template: {key}")
        return self.profiles[self.profile](key, params)

    def abort_reason(self, reason: Optional[str]) -> str:
        return ABORT_REASONS.get(reason or "", "")

    def cancelled(self, reason: Optional[str] = None) -> str:
        return self.render("cancelled", reason=self.abort_reason(reason))

    def _render_short(self, key: str, params: Dict[str, object]) -> str:
        template = SHORT_TEMPLATES.get(key, STANDARD_TEMPLATES[key])
        return template.format(**params).strip()

    def _render_standard(self, key: str, params: Dict[str, object]) -> str:
        return STANDARD_TEMPLATES[key].format(**params).strip()

    def _render_verbose(self, key: str, params: Dict[str, object]) -> str:
        text = self._render_standard(key, params)
        if key in DIALOGUE_PROMPTS:
            text = f"{text} {CANCEL_HINT}"
        return text
