"""
Transfer dialogue state machine.

A transfer collects a recipient, then an amount, reads back a summary and
waits for an explicit yes or no. Each step is a pure function of the current
TransferDialogueState and the user's normalized utterance; it returns a
Transition holding the next state and the sentences to speak. Nothing here
talks to the speech engine or the executor.

Retry budget is per step: each failed attempt increments ``attempt_count``,
filling a field resets it, and reaching ``max_attempts`` aborts the dialogue.
"""

import logging
import re
from enum import Enum
from typing import List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field

from .amount import extract_amount, validate_amount
from .contacts import RecipientResolver
from .intent import to_recipient_reference
from .messages import MessageRenderer, describe_recipient
from .types import (
    AddressReference,
    AmountAccepted,
    AmountRejection,
    DialogueLimits,
    DialogueStep,
    RecipientReference,
    ResolvedRecipient,
    TransferDialogueState,
    TransferIntent,
    TransferOrder,
)

logger = logging.getLogger(__name__)

CANCEL_KEYWORDS = {"cancel", "exit"}
AFFIRMATIVE_KEYWORDS = {"confirm", "confirmed", "yes", "yeah", "ok", "okay", "sure"}
NEGATIVE_KEYWORDS = {"no", "nope", "cancel", "stop", "exit"}

WORD_PATTERN = re.compile(r"[a-z]+")
# Leading transfer verb when the user repeats the command ("send to alice")
LEADING_VERB_PATTERN = re.compile(r"^(?:transfer|send|pay)\b\s*")


class TransitionOutcome(str, Enum):
    STARTED = "started"
    ADVANCED = "advanced"
    REPROMPT = "reprompt"
    ABORTED = "aborted"
    CONFIRMED = "confirmed"
    IGNORED = "ignored"


class Transition(BaseModel):
    """
    Result of one dialogue step.

    Attributes:
        state: State after the step
        outcome: What kind of step it was
        messages: Sentences to speak, in order
        order: The confirmed transfer, set only when the user said yes
        reason: Abort reason code (user_cancelled, declined, attempts_exceeded, ...)
    """

    model_config = ConfigDict(frozen=True)

    state: TransferDialogueState
    outcome: TransitionOutcome
    messages: List[str] = Field(default_factory=list)
    order: Optional[TransferOrder] = None
    reason: Optional[str] = None


def _words(text: str) -> Set[str]:
    return set(WORD_PATTERN.findall((text or "").lower()))


def is_cancel(text: str) -> bool:
    return bool(_words(text) & CANCEL_KEYWORDS)


def classify_confirmation(text: str) -> Optional[bool]:
    """
    True for a clear yes, False for a clear no, None when ambiguous.

    Words from both vocabularies in one utterance count as ambiguous.
    """
    words = _words(text)
    yes = bool(words & AFFIRMATIVE_KEYWORDS)
    no = bool(words & NEGATIVE_KEYWORDS)
    if yes == no:
        return None
    return yes


def _reference_text(reference: RecipientReference) -> str:
    if isinstance(reference, AddressReference):
        return reference.address
    return reference.name


class TransferDialogue:
    """
    Transition functions for one transfer attempt.

    Holds only collaborators and limits; the state is always passed in and
    returned, never stored.
    """

    def __init__(self, resolver: RecipientResolver, limits: Optional[DialogueLimits] = None, renderer: Optional[MessageRenderer] = None):
        self.resolver = resolver
        self.limits = limits or DialogueLimits()
        self.renderer = renderer or MessageRenderer()

    # --- state builders ---

    def _collecting(
        self,
        previous: TransferDialogueState,
        step: DialogueStep,
        recipient: Optional[ResolvedRecipient] = None,
        amount: str = "",
        attempt_count: int = 0,
    ) -> TransferDialogueState:
        return TransferDialogueState(
            active=True,
            step=step,
            recipient=recipient,
            amount=amount,
            attempt_count=attempt_count,
            version=previous.version + 1,
        )

    def _transition(self, previous: TransferDialogueState, state: TransferDialogueState, outcome: TransitionOutcome, messages: List[str], **extra) -> Transition:
        logger.debug(f"Dialogue {previous.step.value} -> {state.step.value} ({outcome.value}, attempts={state.attempt_count}, v{state.version})")
        return Transition(state=state, outcome=outcome, messages=messages, **extra)

    def _abort(self, state: TransferDialogueState, reason: str, lead: Optional[List[str]] = None) -> Transition:
        messages = list(lead or []) + [self.renderer.cancelled(reason)]
        logger.info(f"Transfer dialogue aborted: {reason}")
        return self._transition(state, TransferDialogueState.idle(state.version + 1), TransitionOutcome.ABORTED, messages, reason=reason)

    def _fail(self, state: TransferDialogueState, messages: List[str]) -> Transition:
        """Count a failed attempt; reprompt with ``messages`` or abort when the budget is spent."""
        attempts = state.attempt_count + 1
        if attempts >= self.limits.max_attempts:
            return self._abort(state, "attempts_exceeded")
        retry = self._collecting(state, state.step, state.recipient, state.amount, attempts)
        return self._transition(state, retry, TransitionOutcome.REPROMPT, messages)

    def _to_confirmation(self, state: TransferDialogueState, recipient: ResolvedRecipient, amount: str, outcome: TransitionOutcome) -> Transition:
        summary = self.renderer.render("summary", amount=amount, recipient=describe_recipient(recipient))
        next_state = self._collecting(state, DialogueStep.AWAITING_CONFIRMATION, recipient, amount)
        return self._transition(state, next_state, outcome, [summary])

    # --- public transitions ---

    def start(self, state: TransferDialogueState, intent: TransferIntent) -> Transition:
        """
        Begin a dialogue from a transfer intent.

        A complete one-shot command whose recipient resolves and whose amount
        validates goes straight to confirmation. Whatever was understood is
        kept; the dialogue asks only for what is missing.
        """
        if state.active:
            return Transition(state=state, outcome=TransitionOutcome.IGNORED)

        amount = ""
        rejected: Optional[str] = None
        if intent.amount:
            check = validate_amount(intent.amount, self.limits)
            if isinstance(check, AmountAccepted):
                amount = check.canonical
            else:
                rejected = check.reason
        lead = [rejected] if rejected else []

        if intent.recipient_ref is not None:
            spoken = _reference_text(intent.recipient_ref)
            recipient = self.resolver.resolve(spoken)
            if recipient is not None:
                if amount:
                    return self._to_confirmation(state, recipient, amount, TransitionOutcome.STARTED)
                confirmed = self.renderer.render("recipient_confirmed", recipient=describe_recipient(recipient))
                next_state = self._collecting(state, DialogueStep.AWAITING_AMOUNT, recipient)
                retry = [self.renderer.render("amount_rejected", reason=rejected)] if rejected else []
                return self._transition(state, next_state, TransitionOutcome.STARTED, [confirmed] + retry)

            next_state = self._collecting(state, DialogueStep.AWAITING_RECIPIENT, amount=amount)
            return self._transition(state, next_state, TransitionOutcome.STARTED, lead + [self.renderer.render("recipient_not_found", name=spoken)])

        if amount:
            prompt = self.renderer.render("transfer_started_with_amount", amount=amount)
        else:
            prompt = self.renderer.render("transfer_started")
        next_state = self._collecting(state, DialogueStep.AWAITING_RECIPIENT, amount=amount)
        return self._transition(state, next_state, TransitionOutcome.STARTED, lead + [prompt])

    def advance(self, state: TransferDialogueState, normalized: str) -> Transition:
        """
        Feed one normalized utterance into the current step.

        Cancel keywords are honoured first, whatever the step.
        """
        if not state.active:
            return Transition(state=state, outcome=TransitionOutcome.IGNORED)

        if is_cancel(normalized):
            return self._abort(state, "user_cancelled")
        if state.step == DialogueStep.AWAITING_CONFIRMATION:
            return self._confirm(state, normalized)
        if state.step == DialogueStep.AWAITING_RECIPIENT:
            return self._collect_recipient(state, normalized)
        return self._collect_amount(state, normalized)

    def _collect_recipient(self, state: TransferDialogueState, text: str) -> Transition:
        reference = to_recipient_reference(LEADING_VERB_PATTERN.sub("", text))
        if reference is None:
            return self._fail(state, [self.renderer.render("recipient_reprompt")])

        spoken = _reference_text(reference)
        recipient = self.resolver.resolve(spoken)
        if recipient is None:
            return self._fail(state, [self.renderer.render("recipient_not_found", name=spoken)])

        if state.amount:
            return self._to_confirmation(state, recipient, state.amount, TransitionOutcome.ADVANCED)

        confirmed = self.renderer.render("recipient_confirmed", recipient=describe_recipient(recipient))
        next_state = self._collecting(state, DialogueStep.AWAITING_AMOUNT, recipient)
        return self._transition(state, next_state, TransitionOutcome.ADVANCED, [confirmed])

    def _collect_amount(self, state: TransferDialogueState, text: str) -> Transition:
        # Only the first number counts ("0.5 eth.", "make it 0.1, no 0.2")
        check = validate_amount(extract_amount(text), self.limits)
        if not isinstance(check, AmountAccepted):
            if check.code in (AmountRejection.MISSING, AmountRejection.INVALID):
                return self._fail(state, [self.renderer.render("amount_reprompt")])
            return self._fail(state, [self.renderer.render("amount_rejected", reason=check.reason)])
        assert state.recipient is not None
        return self._to_confirmation(state, state.recipient, check.canonical, TransitionOutcome.ADVANCED)

    def _confirm(self, state: TransferDialogueState, text: str) -> Transition:
        answer = classify_confirmation(text)
        if answer is None:
            return self._fail(state, [self.renderer.render("confirm_reprompt")])
        if not answer:
            return self._abort(state, "declined")

        assert state.recipient is not None
        order = TransferOrder(recipient=state.recipient, amount=state.amount)
        logger.info(f"Transfer confirmed: {order.amount} ETH to {order.recipient.chain_address}")
        idle = TransferDialogueState.idle(state.version + 1)
        return self._transition(state, idle, TransitionOutcome.CONFIRMED, [self.renderer.render("executing")], order=order)

    def cancel(self, state: TransferDialogueState, reason: str = "user_cancelled") -> Transition:
        """Force the dialogue back to Idle from any step."""
        if not state.active:
            return Transition(state=state, outcome=TransitionOutcome.IGNORED)
        return self._abort(state, reason)

    def recognition_failed(self, state: TransferDialogueState, message: str) -> Transition:
        """
        Count a recognition failure against the current step.

        Args:
            state: Current state
            message: Fixed user-facing sentence for the failure
        """
        if not state.active:
            return Transition(state=state, outcome=TransitionOutcome.IGNORED, messages=[message])
        attempts = state.attempt_count + 1
        if attempts >= self.limits.max_attempts:
            return self._abort(state, "attempts_exceeded", lead=[message])
        retry = self._collecting(state, state.step, state.recipient, state.amount, attempts)
        return self._transition(state, retry, TransitionOutcome.REPROMPT, [message, self.reprompt_message(retry)])

    def reprompt_message(self, state: TransferDialogueState) -> Optional[str]:
        """The question to repeat for the current step, or None when idle."""
        if state.step == DialogueStep.AWAITING_RECIPIENT:
            return self.renderer.render("recipient_reprompt")
        if state.step == DialogueStep.AWAITING_AMOUNT:
            return self.renderer.render("amount_prompt")
        if state.step == DialogueStep.AWAITING_CONFIRMATION:
            return self.renderer.render("confirm_reprompt")
        return None
