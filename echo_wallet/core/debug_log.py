"""
Debug logging for voice sessions.

When EW_DEBUG=1, every utterance, parsed intent, dialogue transition and
transfer execution of a session is written as a JSON file under
{project_root}/.echo_wallet/debug/session_<timestamp>/ so a conversation can
be replayed step by step.
"""

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional


class DebugLogger:
    """
    Writes one JSON record per voice-session event.

    Logs are stored in {project_root}/.echo_wallet/debug/ directory with
    timestamps and session identifiers for easy tracking.
    """

    def __init__(self, project_root: str = ".", enabled: Optional[bool] = None):
        """
        Initialize debug logger.

        Args:
            project_root: Project root directory for log storage
            enabled: Override debug enable flag, uses EW_DEBUG env var if None
        """
        self.project_root = project_root
        self.enabled = enabled if enabled is not None else is_debug_enabled()
        self.session_id = datetime.now().strftime("%Y%m%d_%H%M%S")
        self._sequence = 0

        if self.enabled:
            self._setup_log_directory()

    def _setup_log_directory(self) -> None:
        """Create debug log directory structure."""
        self.log_dir = Path(self.project_root) / ".echo_wallet" / "debug"
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.session_dir = self.log_dir / f"session_{self.session_id}"
        self.session_dir.mkdir(exist_ok=True)

    def _write(self, step: str, payload: Dict[str, Any]) -> None:
        if not self.enabled:
            return

        self._sequence += 1
        timestamp = datetime.now().isoformat()
        log_data = {
            "timestamp": timestamp,
            "session_id": self.session_id,
            "sequence": self._sequence,
            "step": step,
            **payload,
        }

        # Sequence prefix keeps files ordered even within the same timestamp
        filename = f"{self._sequence:04d}_{step}_{timestamp.replace(':', '-').replace('.', '_')}.json"
        with open(self.session_dir / filename, "w", encoding="utf-8") as f:
            json.dump(log_data, f, indent=2, ensure_ascii=False, default=str)

    def log_utterance(self, raw: str, normalized: str, confidence: Optional[float]) -> None:
        """
        Log an incoming utterance before and after normalization.

        Args:
            raw: Transcript as delivered by the speech engine
            normalized: Normalizer output
            confidence: Recognition confidence, if the engine reported one
        """
        self._write("utterance", {"raw": raw, "normalized": normalized, "confidence": confidence})

    def log_intent(self, normalized: str, intent: Dict[str, Any]) -> None:
        self._write("intent", {"normalized": normalized, "intent": intent})

    def log_transition(self, before: Dict[str, Any], after: Dict[str, Any], outcome: str, messages: list, reason: Optional[str] = None) -> None:
        self._write(
            "transition",
            {"before": before, "after": after, "outcome": outcome, "messages": messages, "reason": reason},
        )

    def log_execution(self, recipient: str, amount: str, result: Optional[Dict[str, Any]] = None, error: Optional[Exception] = None) -> None:
        """
        Log a hand-off to the transfer executor and its result.
        """
        payload: Dict[str, Any] = {"recipient": recipient, "amount": amount, "result": result}
        if error is not None:
            payload["error"] = str(error)
            payload["error_type"] = type(error).__name__
        self._write("execution", payload)


def is_debug_enabled() -> bool:
    """
    Check if debug logging is enabled via environment variable.

    Returns:
        True if EW_DEBUG=1 is set
    """
    return os.getenv("EW_DEBUG", "0") == "1"
