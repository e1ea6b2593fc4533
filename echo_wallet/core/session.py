"""
Voice session: the host of the transfer dialogue.

A VoiceSession owns the single dialogue state of one user, feeds it with
utterances from the speech engine, speaks whatever the dialogue answers and
hands confirmed transfers to the executor. Commands that are not transfers
(wallet lifecycle, balance, network, transaction status, contacts) are
served directly from the wallet gateway and the contact book.

Delayed prompts go through an injected Scheduler. Every delayed callback
captures the state version it was scheduled against and does nothing once
the dialogue has moved on.
"""

import asyncio
import heapq
import logging
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from .config import ConfigError, config
from .contacts import ContactBook, ContactBookError, RecipientResolver
from .debug_log import DebugLogger
from .dialogue import Transition, TransitionOutcome, TransferDialogue
from .intent import parse
from .lexicon import DEFAULT_LANGUAGE, language_code
from .messages import MessageRenderer, format_address_for_speech
from .normalize import Normalizer, get_normalizer
from .speech import NoSpeechDetected, SpeechError, is_silent
from .types import (
    CheckBalanceIntent,
    ContactsQueryIntent,
    CreateWalletIntent,
    DialogueLimits,
    DialogueStep,
    ImportWalletIntent,
    ParsedIntent,
    SwitchNetworkIntent,
    TransactionHandle,
    TransactionStatusIntent,
    TransferDialogueState,
    TransferIntent,
    TransferOrder,
)
from .wallet import TransferExecutor, WalletGateway

logger = logging.getLogger(__name__)

# Contacts read out per query
ANNOUNCE_LIMIT = 5

TX_STATUS_WORDS = {"confirmed": "confirmed", "failed": "failed", "pending": "pending confirmation"}


class Speaker(Protocol):
    def speak(self, text: str, options: Any = None) -> None: ...


class Listener(Protocol):
    def arm(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> Any: ...


class ManualScheduler:
    """
    Scheduler driven by a virtual clock.

    Callbacks run only when the clock is advanced, in due-time order. Used by
    tests and by the terminal chat loop.
    """

    def __init__(self):
        self.now = 0.0
        self._queue: List[Tuple[float, int, Callable[[], None]]] = []
        self._counter = 0

    @property
    def pending(self) -> int:
        return len(self._queue)

    def call_later(self, delay: float, callback: Callable[[], None]) -> None:
        self._counter += 1
        heapq.heappush(self._queue, (self.now + max(delay, 0.0), self._counter, callback))

    def advance(self, seconds: float) -> int:
        """
        Move the clock forward and run every callback that became due.

        Returns:
            Number of callbacks run
        """
        target = self.now + seconds
        ran = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, callback = heapq.heappop(self._queue)
            self.now = due
            callback()
            ran += 1
        self.now = target
        return ran

    def run_pending(self) -> int:
        """Run everything scheduled, including callbacks scheduled by callbacks."""
        ran = 0
        while self._queue:
            ran += self.advance(self._queue[0][0] - self.now)
        return ran


class AsyncioScheduler:
    """Scheduler backed by an asyncio event loop (the running one by default)."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self.loop or asyncio.get_running_loop()
        return loop.call_later(delay, callback)


class VoiceSession:
    """
    One user's voice conversation with the wallet.

    Only one transfer dialogue can be active at a time. While it is active,
    every utterance goes to the current dialogue step; a new transfer
    command is not started over it.
    """

    def __init__(
        self,
        speaker: Speaker,
        executor: TransferExecutor,
        contacts: ContactBook,
        wallet: Optional[WalletGateway] = None,
        scheduler: Optional[Scheduler] = None,
        listener: Optional[Listener] = None,
        limits: Optional[DialogueLimits] = None,
        renderer: Optional[MessageRenderer] = None,
        normalizer: Optional[Normalizer] = None,
        confidence_threshold: float = 0.7,
        reprompt_delay: float = 2.0,
        announce_interval: float = 2.0,
        debug_logger: Optional[DebugLogger] = None,
        project_root: Optional[str] = None,
    ):
        self.speaker = speaker
        self.executor = executor
        self.contacts = contacts
        self.wallet = wallet
        self.scheduler = scheduler or ManualScheduler()
        self.listener = listener
        self.renderer = renderer or MessageRenderer()
        self.normalizer = normalizer or get_normalizer()
        self.project_root = project_root
        self.dialogue = TransferDialogue(RecipientResolver(contacts), limits, self.renderer)
        self.confidence_threshold = confidence_threshold
        self.reprompt_delay = reprompt_delay
        self.announce_interval = announce_interval
        self.debug = debug_logger or DebugLogger(enabled=False)

        self._state = TransferDialogueState.idle()
        self._normalizers: Dict[str, Normalizer] = {DEFAULT_LANGUAGE: self.normalizer}
        self._reprompt_scheduled_for: Optional[Tuple[int, DialogueStep]] = None

    @classmethod
    def from_config(
        cls,
        speaker: Speaker,
        executor: TransferExecutor,
        contacts: ContactBook,
        wallet: Optional[WalletGateway] = None,
        scheduler: Optional[Scheduler] = None,
        listener: Optional[Listener] = None,
        project_root: Optional[str] = None,
    ) -> "VoiceSession":
        """
        Build a session from environment settings.

        Raises:
            ConfigError: If a setting is invalid
        """
        try:
            renderer = MessageRenderer(config.message_profile)
        except ValueError as e:
            raise ConfigError(f"EW_MESSAGE_PROFILE: {e}")
        return cls(
            speaker,
            executor,
            contacts,
            wallet=wallet,
            scheduler=scheduler,
            listener=listener,
            limits=config.dialogue_limits(),
            renderer=renderer,
            normalizer=Normalizer.for_project(project_root),
            confidence_threshold=config.confidence_threshold,
            reprompt_delay=config.reprompt_delay,
            announce_interval=config.announce_interval,
            debug_logger=DebugLogger(project_root or "."),
            project_root=project_root,
        )

    # --- exposed API ---

    def get_dialogue_snapshot(self) -> TransferDialogueState:
        """Current dialogue state. The record is immutable."""
        return self._state

    def handle_utterance(self, raw: str, confidence: Optional[float] = None, lang_hint: Optional[str] = None) -> TransferDialogueState:
        """
        Process one finalized speech recognition result.

        Args:
            raw: Transcript text
            confidence: Recognition confidence (0-1), if the engine reports one
            lang_hint: Language reported by the engine ("chinese", "zh", "auto")

        Returns:
            Dialogue state after the utterance
        """
        normalized = self._normalizer_for(lang_hint).normalize(raw)
        self.debug.log_utterance(raw, normalized, confidence)

        if not normalized or (confidence is not None and confidence < self.confidence_threshold):
            logger.debug(f"Ignoring utterance '{raw}' (confidence={confidence})")
            self._on_no_speech()
            return self._state

        if self._state.active:
            self._apply(self.dialogue.advance(self._state, normalized))
        else:
            intent = parse(normalized)
            self.debug.log_intent(normalized, intent.model_dump(mode="json"))
            logger.info(f"Intent: {intent.kind}")
            self._dispatch(intent)

        self._arm()
        return self._state

    def handle_error(self, error: SpeechError) -> TransferDialogueState:
        """
        Process a speech recognition failure.

        No-speech re-arms listening and, during a dialogue, repeats the
        current question after a pause. Other failures are spoken with their
        fixed message and count as a failed attempt of the current step.
        """
        if isinstance(error, NoSpeechDetected):
            self._on_no_speech()
            return self._state
        if is_silent(error):
            return self._state

        logger.warning(f"Speech recognition error: {type(error).__name__}: {error}")
        if self._state.active:
            self._apply(self.dialogue.recognition_failed(self._state, error.spoken_message))
        else:
            self._say(error.spoken_message)
        return self._state

    def cancel(self) -> TransferDialogueState:
        """Abort any active dialogue and return to Idle."""
        self._apply(self.dialogue.cancel(self._state, "session_cancelled"))
        return self._state

    # --- internals ---

    def _normalizer_for(self, lang_hint: Optional[str]) -> Normalizer:
        code = language_code(lang_hint)
        if code not in self._normalizers:
            self._normalizers[code] = Normalizer.for_project(self.project_root, code)
        return self._normalizers[code]

    def _say(self, text: Optional[str]) -> None:
        if text:
            self.speaker.speak(text)

    def _arm(self) -> None:
        if self.listener is not None:
            self.listener.arm()

    def _apply(self, transition: Transition) -> None:
        before = self._state
        self._state = transition.state
        if transition.outcome != TransitionOutcome.IGNORED:
            self.debug.log_transition(
                before.model_dump(mode="json"),
                transition.state.model_dump(mode="json"),
                transition.outcome.value,
                transition.messages,
                transition.reason,
            )
        for message in transition.messages:
            self._say(message)
        if transition.order is not None:
            self._execute(transition.order)

    def _execute(self, order: TransferOrder) -> Optional[TransactionHandle]:
        recipient = order.recipient
        try:
            handle = self.executor.execute(recipient.chain_address, order.amount)
        except Exception as e:
            logger.error(f"Transfer execution failed: {e}")
            self.debug.log_execution(recipient.chain_address, order.amount, error=e)
            self._say(self.renderer.render("transfer_failed"))
            return None

        self.debug.log_execution(recipient.chain_address, order.amount, result=handle.model_dump(mode="json"))
        if recipient.contact_id:
            try:
                self.contacts.mark_used(recipient.contact_id)
            except ContactBookError as e:
                logger.warning(f"Could not record contact usage: {e}")
        self._say(self.renderer.render("transfer_success", hash=format_address_for_speech(handle.hash)))
        return handle

    def _on_no_speech(self) -> None:
        self._arm()
        if self._state.active:
            self._schedule_reprompt()

    def _schedule_reprompt(self) -> None:
        expected = (self._state.version, self._state.step)
        if self._reprompt_scheduled_for == expected:
            return
        self._reprompt_scheduled_for = expected

        def reprompt() -> None:
            if self._reprompt_scheduled_for == expected:
                self._reprompt_scheduled_for = None
            state = self._state
            if (state.version, state.step) != expected:
                logger.debug(f"Skipping stale reprompt for {expected[1].value} v{expected[0]}")
                return
            self._say(self.dialogue.reprompt_message(state))

        self.scheduler.call_later(self.reprompt_delay, reprompt)

    def _wallet_ready(self) -> bool:
        if self.wallet is not None and not self.wallet.has_wallet():
            self._say(self.renderer.render("wallet_required"))
            return False
        return True

    def _dispatch(self, intent: ParsedIntent) -> None:
        if isinstance(intent, TransferIntent):
            if self._wallet_ready():
                self._apply(self.dialogue.start(self._state, intent))
        elif isinstance(intent, ContactsQueryIntent):
            self._announce_contacts(intent.raw)
        elif isinstance(intent, (CreateWalletIntent, ImportWalletIntent, CheckBalanceIntent, TransactionStatusIntent, SwitchNetworkIntent)):
            self._wallet_command(intent)
        else:
            self._say(self.renderer.render("not_understood"))

    def _wallet_command(self, intent: ParsedIntent) -> None:
        if self.wallet is None:
            self._say(self.renderer.render("wallet_unavailable"))
            return
        wallet = self.wallet

        try:
            if isinstance(intent, CreateWalletIntent):
                info = wallet.create_wallet()
                self._say(self.renderer.render("wallet_created", address=format_address_for_speech(info.address)))
            elif isinstance(intent, ImportWalletIntent):
                info = wallet.import_wallet()
                self._say(self.renderer.render("wallet_imported", address=format_address_for_speech(info.address)))
            elif isinstance(intent, SwitchNetworkIntent):
                network = wallet.switch_network(intent.target)
                self._say(self.renderer.render("network_switched", network="mainnet" if network == "mainnet" else "testnet"))
            elif not self._wallet_ready():
                return
            elif isinstance(intent, CheckBalanceIntent):
                balance = wallet.get_balance()
                self._say(self.renderer.render("balance_result", balance=f"{balance:.4f}"))
            elif isinstance(intent, TransactionStatusIntent):
                self._transaction_status(intent.hash)
        except Exception as e:
            logger.error(f"Wallet command {intent.kind} failed: {e}")
            self._say(self.renderer.render("wallet_failed"))

    def _transaction_status(self, tx_hash: Optional[str]) -> None:
        if not tx_hash:
            self._say(self.renderer.render("tx_hash_missing"))
            return
        assert self.wallet is not None
        handle = self.wallet.get_transaction_status(tx_hash)
        if handle is None:
            self._say(self.renderer.render("tx_not_found"))
            return
        self._say(self.renderer.render("tx_status", status=TX_STATUS_WORDS[handle.status], amount=handle.amount))

    def _announce_contacts(self, raw: str) -> None:
        """Read out frequent contacts, or the first few contacts one by one."""
        if "frequent" in raw or "recent" in raw:
            frequent = self.contacts.frequent(ANNOUNCE_LIMIT)
            if frequent:
                self._say(self.renderer.render("frequent_contacts", names=", ".join(c.name for c in frequent)))
                return

        contacts = self.contacts.contacts()
        if not contacts:
            self._say(self.renderer.render("contacts_empty"))
            return

        self._say(self.renderer.render("contacts_intro", count=len(contacts)))
        version = self._state.version
        for index, contact in enumerate(contacts[:ANNOUNCE_LIMIT]):
            entry = self.renderer.render("contact_entry", name=contact.name, address=format_address_for_speech(contact.address))

            def announce(entry: str = entry) -> None:
                if self._state.version != version:
                    return
                self._say(entry)

            self.scheduler.call_later(self.announce_interval * (index + 1), announce)
