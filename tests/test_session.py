"""
Tests for the voice session: utterance routing, execution hand-off,
delayed prompts and non-transfer commands.
"""

import asyncio
import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from echo_wallet.core.config import ConfigError
from echo_wallet.core.contacts import ContactBook
from echo_wallet.core.debug_log import DebugLogger
from echo_wallet.core.session import AsyncioScheduler, ManualScheduler, VoiceSession
from echo_wallet.core.speech import NoSpeechDetected, RecognitionAborted, RecognitionNetworkError
from echo_wallet.core.types import DialogueStep
from echo_wallet.core.wallet import DemoWallet

from .conftest import ALICE, CountingListener, RecordingExecutor, RecordingSpeaker

RECIPIENT_REPROMPT = "Please say the contact name or a wallet address."


@pytest.fixture
def speaker() -> RecordingSpeaker:
    return RecordingSpeaker()


@pytest.fixture
def executor() -> RecordingExecutor:
    return RecordingExecutor()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def listener() -> CountingListener:
    return CountingListener()


@pytest.fixture
def session(speaker, executor, contacts, scheduler, listener) -> VoiceSession:
    return VoiceSession(speaker, executor, contacts, scheduler=scheduler, listener=listener)


class TestTransferExecution:
    """Confirmed transfers reach the executor exactly once."""

    def test_one_shot_confirm_executes(self, session, speaker, executor, contacts):
        """Test the full one-shot flow from command to submitted transfer."""
        session.handle_utterance("Transfer zero point one E T H to Alice")
        assert session.get_dialogue_snapshot().step == DialogueStep.AWAITING_CONFIRMATION

        state = session.handle_utterance("confirm")

        assert executor.calls == [(ALICE, "0.1")]
        assert state.step == DialogueStep.IDLE
        assert speaker.spoken[-2:] == ["Executing the transfer. Please wait...", "Transfer submitted. Transaction hash 0x1234...1234."]
        assert contacts.find_by_name("alice").usage_count == 1

    def test_guided_flow_executes(self, session, executor):
        """Test transfer, recipient, amount, confirm as separate utterances."""
        for utterance in ["transfer", "bob", "twenty five", "yes"]:
            session.handle_utterance(utterance)
        assert executor.calls == [("0x" + "b" * 40, "25")]

    @pytest.mark.parametrize("answer", ["no", "cancel", "maybe", "hello"])
    def test_no_execution_without_affirmative(self, session, executor, answer):
        """Test that anything but a clear yes never reaches the executor."""
        session.handle_utterance("transfer 0.1 eth to alice")
        session.handle_utterance(answer)
        assert executor.calls == []

    def test_executor_failure_speaks_fixed_sentence(self, speaker, contacts, scheduler):
        """Test that executor errors are not read out verbatim."""
        executor = RecordingExecutor(fail=True)
        session = VoiceSession(speaker, executor, contacts, scheduler=scheduler)
        session.handle_utterance("transfer 0.1 eth to alice")
        state = session.handle_utterance("confirm")

        assert len(executor.calls) == 1
        assert speaker.last == "The transfer could not be completed. Please try again later."
        assert not any("nonce" in text for text in speaker.spoken)
        assert state.step == DialogueStep.IDLE
        assert contacts.find_by_name("alice").usage_count == 0

    def test_yes_cancel_does_not_execute(self, session, executor, speaker):
        """Test that a cancel keyword next to a yes aborts the confirmation."""
        session.handle_utterance("transfer 0.1 eth to alice")
        state = session.handle_utterance("yes, cancel")
        assert executor.calls == []
        assert state.step == DialogueStep.IDLE
        assert speaker.last == "Transfer cancelled."

    def test_chinese_utterances_with_language_hint(self, session, executor):
        """Test that the engine's language hint selects the zh tables per utterance."""
        session.handle_utterance("转账零点零零五以太给alice", lang_hint="chinese")
        assert session.get_dialogue_snapshot().amount == "0.005"
        session.handle_utterance("确认", lang_hint="zh")
        assert executor.calls == [(ALICE, "0.005")]

    def test_chinese_keywords_need_the_hint(self, session):
        session.handle_utterance("转账", lang_hint="auto")
        assert session.get_dialogue_snapshot().active is False

    def test_active_dialogue_captures_other_commands(self, session, speaker):
        """Test that a contacts query during a dialogue is treated as an answer."""
        session.handle_utterance("transfer")
        state = session.handle_utterance("show my contacts")

        assert state.step == DialogueStep.AWAITING_RECIPIENT
        assert state.attempt_count == 1
        assert not any(text.startswith("You have") for text in speaker.spoken)

    def test_new_transfer_not_started_over_active(self, session):
        """Test that a second transfer command does not restart the dialogue."""
        session.handle_utterance("send to alice")
        state = session.handle_utterance("transfer 2 eth to bob")
        assert state.recipient.display_name == "alice"


class TestSilenceAndErrors:
    """Low-confidence input, no-speech reprompts and recognition errors."""

    def test_low_confidence_ignored(self, session, speaker, listener):
        """Test that a low-confidence result changes nothing and re-arms listening."""
        state = session.handle_utterance("transfer 0.1 eth to alice", confidence=0.3)
        assert state.step == DialogueStep.IDLE
        assert speaker.spoken == []
        assert listener.armed == 1

    def test_confident_result_accepted(self, session):
        """Test that results at or above the threshold are processed."""
        state = session.handle_utterance("transfer", confidence=0.9)
        assert state.step == DialogueStep.AWAITING_RECIPIENT

    def test_reprompt_after_delay(self, session, speaker, scheduler):
        """Test that silence repeats the question after the delay, not before."""
        session.handle_utterance("transfer")
        spoken = len(speaker.spoken)
        session.handle_utterance("")

        assert scheduler.advance(1.0) == 0
        assert len(speaker.spoken) == spoken
        assert scheduler.advance(1.0) == 1
        assert speaker.last == RECIPIENT_REPROMPT

    def test_reprompt_deduplicated(self, session, scheduler):
        """Test that repeated silence in the same step schedules one reprompt."""
        session.handle_utterance("transfer")
        session.handle_utterance("")
        session.handle_error(NoSpeechDetected())
        assert scheduler.pending == 1

    def test_stale_reprompt_after_cancel(self, session, speaker, scheduler):
        """Test that a reprompt scheduled before cancel is never spoken."""
        session.handle_utterance("transfer")
        session.handle_utterance("")
        session.cancel()
        cancelled = list(speaker.spoken)

        scheduler.run_pending()
        assert speaker.spoken == cancelled
        assert speaker.last == "Transfer cancelled."
        assert session.get_dialogue_snapshot().step == DialogueStep.IDLE

    def test_stale_reprompt_after_step_change(self, session, speaker, scheduler):
        """Test that a reprompt for an answered step is dropped."""
        session.handle_utterance("transfer")
        session.handle_utterance("")
        session.handle_utterance("alice")
        answered = list(speaker.spoken)

        scheduler.run_pending()
        assert speaker.spoken == answered

    def test_no_reprompt_when_idle(self, session, scheduler, listener):
        """Test that silence outside a dialogue only re-arms listening."""
        session.handle_error(NoSpeechDetected())
        assert scheduler.pending == 0
        assert listener.armed == 1

    def test_network_error_during_dialogue(self, session, speaker):
        """Test that recognition errors are spoken and count as an attempt."""
        session.handle_utterance("transfer")
        state = session.handle_error(RecognitionNetworkError("timed out"))

        assert state.attempt_count == 1
        assert speaker.spoken[-2:] == ["Network connection issue. Please check your connection and try again.", RECIPIENT_REPROMPT]

    def test_network_error_when_idle(self, session, speaker):
        """Test that errors outside a dialogue are only spoken."""
        state = session.handle_error(RecognitionNetworkError("timed out"))
        assert state.step == DialogueStep.IDLE
        assert speaker.spoken == ["Network connection issue. Please check your connection and try again."]

    def test_aborted_recognition_is_silent(self, session, speaker):
        """Test that an aborted recognition is not announced."""
        session.handle_utterance("transfer")
        spoken = list(speaker.spoken)
        state = session.handle_error(RecognitionAborted())
        assert speaker.spoken == spoken
        assert state.attempt_count == 0

    def test_asyncio_scheduler(self, speaker, executor, contacts):
        """Test reprompts on a real event loop."""

        async def run() -> None:
            session = VoiceSession(speaker, executor, contacts, scheduler=AsyncioScheduler(), reprompt_delay=0.01)
            session.handle_utterance("transfer")
            session.handle_utterance("")
            await asyncio.sleep(0.1)

        asyncio.run(run())
        assert speaker.last == RECIPIENT_REPROMPT


class TestContactsAnnouncement:
    """Contacts are read out one at a time."""

    def test_first_five_announced(self, speaker, executor, scheduler):
        """Test intro now, then at most five entries spaced by the interval."""
        book = ContactBook()
        for index in range(6):
            book.add_contact(f"friend{index}", "0x" + str(index) * 40)
        session = VoiceSession(speaker, executor, book, scheduler=scheduler)

        session.handle_utterance("show my contacts")
        assert speaker.spoken == ["You have 6 saved contacts."]

        scheduler.advance(2.0)
        assert speaker.last == "friend0, address 0x0000...0000."

        scheduler.run_pending()
        assert len(speaker.spoken) == 6
        assert speaker.last.startswith("friend4")

    def test_announcement_stops_when_dialogue_starts(self, session, speaker, scheduler):
        """Test that pending announcements are dropped once a transfer starts."""
        session.handle_utterance("show my contacts")
        scheduler.advance(2.0)
        session.handle_utterance("transfer")
        spoken = list(speaker.spoken)

        scheduler.run_pending()
        assert speaker.spoken == spoken

    def test_frequent_contacts(self, session, speaker, contacts):
        """Test the frequent-contacts summary."""
        contacts.mark_used(contacts.find_by_name("bob").id)
        session.handle_utterance("show my frequent contacts")
        assert speaker.last == "Your frequent contacts are: bob."

    def test_empty_book(self, speaker, executor, scheduler):
        """Test the empty contact book message."""
        session = VoiceSession(speaker, executor, ContactBook(), scheduler=scheduler)
        session.handle_utterance("show my contacts")
        assert speaker.spoken == ["Your contact list is empty."]
        assert scheduler.pending == 0


class TestWalletCommands:
    """Non-transfer commands served by the wallet gateway."""

    @pytest.fixture
    def wallet(self) -> DemoWallet:
        return DemoWallet(balance="1.5")

    @pytest.fixture
    def wallet_session(self, speaker, wallet, contacts, scheduler) -> VoiceSession:
        return VoiceSession(speaker, wallet, contacts, wallet=wallet, scheduler=scheduler)

    def test_transfer_requires_wallet(self, wallet_session, speaker):
        """Test that no dialogue starts without a wallet."""
        state = wallet_session.handle_utterance("transfer 0.1 eth to alice")
        assert state.step == DialogueStep.IDLE
        assert speaker.last == "Please create or import a wallet first."

    def test_create_then_balance(self, wallet_session, speaker):
        """Test wallet creation and the balance read-out."""
        wallet_session.handle_utterance("create wallet")
        assert speaker.last.startswith("Your new wallet is ready. Address 0x")

        wallet_session.handle_utterance("check my balance")
        assert speaker.last == "Your balance is 1.5000 ETH."

    def test_balance_without_wallet(self, wallet_session, speaker):
        """Test balance before any wallet exists."""
        wallet_session.handle_utterance("check my balance")
        assert speaker.last == "Please create or import a wallet first."

    def test_import_without_saved_wallet(self, wallet_session, speaker):
        """Test that gateway errors are spoken as a fixed sentence."""
        wallet_session.handle_utterance("import wallet")
        assert speaker.last == "The wallet operation failed. Please try again."

    def test_switch_network(self, wallet_session, wallet, speaker):
        """Test network switching by voice."""
        wallet_session.handle_utterance("switch to main net")
        assert wallet.network == "mainnet"
        assert speaker.last == "Switched to mainnet."

        wallet_session.handle_utterance("switch network to testnet")
        assert speaker.last == "Switched to testnet."

    def test_transaction_status_after_transfer(self, wallet_session, wallet, speaker):
        """Test that a submitted transfer can be looked up by hash."""
        wallet_session.handle_utterance("create wallet")
        wallet_session.handle_utterance("send 0.1 eth to bob")
        wallet_session.handle_utterance("confirm")
        tx_hash = next(iter(wallet.transactions))

        wallet_session.handle_utterance(f"check transaction {tx_hash}")
        assert speaker.last == "Transaction status: confirmed, amount: 0.1 ETH."

        wallet_session.handle_utterance("check my balance")
        assert speaker.last == "Your balance is 1.4000 ETH."

    def test_transaction_status_unknown_hash(self, wallet_session, speaker):
        """Test lookup of a hash the wallet has never seen."""
        wallet_session.handle_utterance("create wallet")
        wallet_session.handle_utterance("check transaction 0x" + "ab" * 32)
        assert speaker.last == "Transaction not found."

    def test_transaction_status_without_hash(self, wallet_session, speaker):
        """Test a status query that carries no hash."""
        wallet_session.handle_utterance("create wallet")
        wallet_session.handle_utterance("transaction status")
        assert speaker.last == "Please provide the transaction hash."

    def test_no_wallet_gateway(self, session, speaker):
        """Test wallet commands when no gateway is configured."""
        session.handle_utterance("check my balance")
        assert speaker.last == "Wallet features are not available right now."

    def test_not_understood(self, session, speaker):
        """Test that free text gets a fixed answer and changes nothing."""
        state = session.handle_utterance("hello there")
        assert speaker.last == "Sorry, I did not understand that command."
        assert state.step == DialogueStep.IDLE


class TestSessionSetup:
    def test_snapshot_is_immutable(self, session):
        session.handle_utterance("transfer")
        snapshot = session.get_dialogue_snapshot()
        with pytest.raises(ValidationError):
            snapshot.step = DialogueStep.IDLE
        assert session.get_dialogue_snapshot().step == DialogueStep.AWAITING_RECIPIENT

    def test_cancel_when_idle(self, session, speaker):
        state = session.cancel()
        assert state.step == DialogueStep.IDLE
        assert speaker.spoken == []

    def test_from_config_limits(self, monkeypatch, speaker, executor, contacts):
        monkeypatch.setenv("EW_MAX_ATTEMPTS", "1")
        monkeypatch.setenv("EW_MESSAGE_PROFILE", "short")
        session = VoiceSession.from_config(speaker, executor, contacts)
        session.handle_utterance("transfer")
        state = session.handle_utterance("zed")
        assert state.step == DialogueStep.IDLE
        assert speaker.spoken[0] == "Who is the recipient?"

    def test_from_config_bad_profile(self, monkeypatch, speaker, executor, contacts):
        monkeypatch.setenv("EW_MESSAGE_PROFILE", "chatty")
        with pytest.raises(ConfigError):
            VoiceSession.from_config(speaker, executor, contacts)

    def test_debug_log_written(self, tmp_path: Path, speaker, executor, contacts):
        debug = DebugLogger(str(tmp_path), enabled=True)
        session = VoiceSession(speaker, executor, contacts, debug_logger=debug)
        session.handle_utterance("transfer 0.1 eth to alice")
        session.handle_utterance("confirm")

        files = sorted(debug.session_dir.glob("*.json"))
        steps = [json.loads(f.read_text(encoding="utf-8"))["step"] for f in files]
        assert steps == ["utterance", "intent", "transition", "utterance", "transition", "execution"]
