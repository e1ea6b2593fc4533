"""
Speech input and output boundaries.

Recognition errors are a small exception hierarchy; each class carries the
fixed sentence that may be read back to the user, so raw engine errors are
never spoken. ``SpeechProcessor`` wraps OpenAI Whisper for audio files and
``ConsoleSpeaker`` renders spoken output to the terminal.
"""

import logging
from pathlib import Path
from typing import Any, Iterable, List, Optional

from openai import APIConnectionError, APIError, AuthenticationError, PermissionDeniedError
from pydantic import BaseModel, Field
from rich.console import Console

from .config import config, get_client
from .types import Transcript

logger = logging.getLogger(__name__)

# Whisper upload limit
MAX_AUDIO_BYTES = 25 * 1024 * 1024
SUPPORTED_AUDIO_EXTENSIONS = {".mp3", ".mp4", ".mpeg", ".mpga", ".m4a", ".wav", ".webm"}


class SpeechError(Exception):
    """Raised when speech processing fails."""

    spoken_message = "Speech recognition failed. Please try again."


class NoSpeechDetected(SpeechError):
    """Nothing was said. Not a user-facing error: listening is simply re-armed."""

    spoken_message = ""


class RecognitionAborted(SpeechError):
    """Recognition was stopped on purpose; nothing to say."""

    spoken_message = ""


class MicrophonePermissionDenied(SpeechError):
    spoken_message = "Microphone permission denied. Please allow microphone access in your settings."


class MicrophoneUnavailable(SpeechError):
    spoken_message = "Unable to access the microphone. Please check the connection and allow microphone access."


class RecognitionNetworkError(SpeechError):
    spoken_message = "Network connection issue. Please check your connection and try again."


class RecognitionServiceUnavailable(SpeechError):
    spoken_message = "Speech recognition service is unavailable. Please try again later."


class RecognitionFailed(SpeechError):
    pass


def is_silent(error: SpeechError) -> bool:
    """Errors that must not be read aloud."""
    return not error.spoken_message


class SpeechOptions(BaseModel):
    """Synthesis parameters (1.0 is the engine default for each)."""

    rate: float = Field(default=1.0, gt=0.0, le=10.0)
    pitch: float = Field(default=1.0, ge=0.0, le=2.0)
    volume: float = Field(default=1.0, ge=0.0, le=1.0)


class ConsoleSpeaker:
    """
    Speaks by printing to a rich console.

    Like a real synthesizer, a new utterance cancels the one still playing;
    here that only affects ``current``. Everything spoken is kept in
    ``history``.
    """

    def __init__(self, console: Optional[Console] = None, prefix: str = "🔊"):
        self.console = console or Console()
        self.prefix = prefix
        self.current: Optional[str] = None
        self.history: List[str] = []

    def cancel(self) -> None:
        self.current = None

    def speak(self, text: str, options: Optional[SpeechOptions] = None) -> None:
        if not text:
            return
        self.cancel()
        self.current = text
        self.history.append(text)
        style = "dim" if options is not None and options.volume < 0.5 else "bold cyan"
        self.console.print(f"{self.prefix} [{style}]{text}[/{style}]")


def _confidence_from_segments(segments: Optional[Iterable[Any]]) -> float:
    """
    Estimate recognition confidence from Whisper segments.

    Whisper does not report a confidence directly; the highest no-speech
    probability across segments is used as the inverse.
    """
    probabilities = []
    for segment in segments or []:
        value = segment.get("no_speech_prob") if isinstance(segment, dict) else getattr(segment, "no_speech_prob", None)
        if value is not None:
            probabilities.append(float(value))
    if not probabilities:
        return 1.0
    return max(0.0, min(1.0, 1.0 - max(probabilities)))


def validate_audio_format(path: str) -> bool:
    """
    Validate if the audio file format is supported.

    Args:
        path: Path to the audio file

    Returns:
        True if format is supported, False otherwise
    """
    return Path(path).suffix.lower() in SUPPORTED_AUDIO_EXTENSIONS


class SpeechProcessor:
    """
    Handles speech-to-text conversion using OpenAI Whisper.

    Engine failures are mapped onto the recognition error hierarchy.
    """

    def __init__(self, client=None, model: Optional[str] = None):
        self.client = client or get_client()
        self.model = model or config.asr_model

    def transcribe_audio(self, path: str) -> Transcript:
        """
        Transcribe an audio file with language auto-detection.

        Args:
            path: Path to the audio file

        Returns:
            Transcript with text, detected language and estimated confidence

        Raises:
            NoSpeechDetected: If the recording contains no speech
            RecognitionNetworkError: If the API could not be reached
            MicrophonePermissionDenied: If the API refused the credentials
            RecognitionFailed: For unreadable files and any other engine failure
            FileNotFoundError: If audio file doesn't exist
        """
        audio_path = Path(path)

        if not audio_path.exists():
            raise FileNotFoundError(f"Audio file not found: {path}")

        if not audio_path.is_file():
            raise RecognitionFailed(f"Path is not a file: {path}")

        file_size = audio_path.stat().st_size
        if file_size > MAX_AUDIO_BYTES:
            raise RecognitionFailed(f"Audio file too large: {file_size / 1024 / 1024:.1f}MB (max: 25MB)")

        try:
            with open(audio_path, "rb") as audio_file:
                response = self.client.audio.transcriptions.create(model=self.model, file=audio_file, response_format="verbose_json")
        except APIConnectionError as e:
            raise RecognitionNetworkError(f"Could not reach the transcription service: {e}")
        except (AuthenticationError, PermissionDeniedError) as e:
            raise MicrophonePermissionDenied(f"Transcription request was refused: {e}")
        except APIError as e:
            raise RecognitionFailed(f"Failed to transcribe audio: {e}")
        except OSError as e:
            raise RecognitionFailed(f"Failed to read audio file: {e}")

        if hasattr(response, "text"):
            text = (response.text or "").strip()
            lang_detected = getattr(response, "language", None) or "auto"
            confidence = _confidence_from_segments(getattr(response, "segments", None))
        else:
            text = str(response).strip()
            lang_detected = "auto"
            confidence = 1.0

        if not text:
            raise NoSpeechDetected(f"No speech detected in {audio_path.name}")

        logger.debug(f"Transcribed {audio_path.name}: lang={lang_detected} confidence={confidence:.2f}")
        return Transcript(text=text, lang_hint=lang_detected, confidence=confidence)
