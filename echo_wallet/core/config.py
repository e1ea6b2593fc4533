"""
Configuration management for Echo Wallet.

Settings are read from the process environment on every access. A project can
keep them in .echo_wallet/.env, which is loaded with python-dotenv only when a
caller asks for it; importing this module never touches the environment.
"""

import os
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from openai import OpenAI
from pydantic import ValidationError

from .types import DialogueLimits

METADATA_DIRNAME = ".echo_wallet"


class ConfigError(Exception):
    """Raised when configuration is invalid or missing."""

    pass


@lru_cache(maxsize=32)
def load_config(env_path: Optional[str] = None, override: bool = False) -> None:
    """Explicitly load environment variables from the given .env file path.

    Notes:
    - This function does NOT perform implicit loading when env_path is None.
    - Callers should pass a project-scoped env path resolved via helpers in this module.
    """
    if env_path:
        load_dotenv(dotenv_path=env_path, override=override)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, str(default))
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got '{raw}'")


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, str(default))
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got '{raw}'")


def _decimal_env(name: str, default: str) -> Decimal:
    raw = os.getenv(name, default)
    try:
        value = Decimal(raw)
    except InvalidOperation:
        raise ConfigError(f"{name} must be a decimal number, got '{raw}'")
    if not value.is_finite():
        raise ConfigError(f"{name} must be a finite number, got '{raw}'")
    return value


class Config:
    """Configuration settings for Echo Wallet."""

    @property
    def openai_api_key(self) -> str:
        """Get OpenAI API key from environment."""
        key = os.getenv("OPENAI_API_KEY")
        if not key:
            raise ConfigError("OPENAI_API_KEY not found in environment. Please set it in your environment or .env file.")
        return key

    @property
    def asr_model(self) -> str:
        """Get the model name for ASR (default: whisper-1)."""
        return os.getenv("ASR_MODEL", "whisper-1")

    @property
    def openai_timeout(self) -> int:
        """Get OpenAI API timeout in seconds (default: 60)."""
        return _int_env("OPENAI_TIMEOUT", 60)

    @property
    def max_retries(self) -> int:
        """Get maximum number of retries for API calls (default: 3)."""
        return _int_env("MAX_RETRIES", 3)

    @property
    def max_attempts(self) -> int:
        """Failed attempts allowed per dialogue step (default: 3)."""
        return _int_env("EW_MAX_ATTEMPTS", 3)

    @property
    def min_amount(self) -> Decimal:
        """Smallest transferable amount in ETH (default: 0.000001)."""
        return _decimal_env("EW_MIN_AMOUNT", "0.000001")

    @property
    def max_amount(self) -> Decimal:
        """Largest transferable amount in ETH (default: 1000)."""
        return _decimal_env("EW_MAX_AMOUNT", "1000")

    @property
    def confidence_threshold(self) -> float:
        """Recognition confidence below which an utterance is ignored (default: 0.7)."""
        return _float_env("EW_CONFIDENCE_THRESHOLD", 0.7)

    @property
    def reprompt_delay(self) -> float:
        """Seconds to wait before repeating a question after silence (default: 2.0)."""
        return _float_env("EW_REPROMPT_DELAY", 2.0)

    @property
    def announce_interval(self) -> float:
        """Seconds between announced contacts (default: 2.0)."""
        return _float_env("EW_ANNOUNCE_INTERVAL", 2.0)

    @property
    def message_profile(self) -> str:
        """Spoken message profile: short, standard or verbose (default: standard)."""
        return os.getenv("EW_MESSAGE_PROFILE", "standard")

    @property
    def fuzzy_threshold(self) -> float:
        """Minimum similarity (0-1) for fuzzy contact matches (default: 0.8)."""
        return _float_env("EW_FUZZY_THRESHOLD", 0.8)

    @property
    def contacts_file(self) -> Optional[str]:
        """Explicit contact book path; None means the project default."""
        return os.getenv("EW_CONTACTS_FILE") or None

    @property
    def debug(self) -> bool:
        return os.getenv("EW_DEBUG", "0") == "1"

    def dialogue_limits(self) -> DialogueLimits:
        """
        Build the dialogue limits from the environment.

        Raises:
            ConfigError: If the values are not valid limits
        """
        try:
            return DialogueLimits(max_attempts=self.max_attempts, min_amount=self.min_amount, max_amount=self.max_amount)
        except ValidationError as e:
            raise ConfigError(f"Invalid dialogue limits: {e}")


# Global config instance
config = Config()

# --- Project-scoped environment helpers ---

DEFAULT_ENV_FILENAME = ".env"
ENV_FILE_ENV_VARS = ("EW_ENV_FILE",)
PROJECT_ROOT_ENV_VARS = ("EW_PROJECT_ROOT",)


def detect_project_root(start_dir: Optional[str] = None) -> Optional[Path]:
    """Detect project root by looking for a .echo_wallet directory upwards from start_dir (or CWD)."""
    start = Path(start_dir) if start_dir else Path.cwd()
    for current in [start] + list(start.parents):
        if (current / METADATA_DIRNAME).exists():
            return current
    return None


def get_project_metadata_dir(project_root: Optional[str] = None) -> Path:
    """Return the .echo_wallet directory for a given or detected project root."""
    root = Path(project_root) if project_root else (detect_project_root() or Path.cwd())
    return root / METADATA_DIRNAME


def get_project_env_path(project_root: Optional[str] = None, filename: str = DEFAULT_ENV_FILENAME) -> Path:
    """Compute the path to the project-scoped environment file inside .echo_wallet."""
    return get_project_metadata_dir(project_root) / filename


def get_contacts_path(project_root: Optional[str] = None) -> Path:
    """Contact book location: EW_CONTACTS_FILE, else .echo_wallet/contacts.json."""
    explicit = config.contacts_file
    if explicit:
        return Path(explicit)
    return get_project_metadata_dir(project_root) / "contacts.json"


def ensure_project_env(project_root: Optional[str] = None, filename: str = DEFAULT_ENV_FILENAME, overwrite: bool = False) -> Path:
    """
    Create a project-scoped env file under .echo_wallet with the default settings.
    This NEVER loads env values, it only writes the file.

    Returns:
        Path to the env file under the project's .echo_wallet directory.
    """
    meta = get_project_metadata_dir(project_root)
    meta.mkdir(parents=True, exist_ok=True)
    target = meta / filename
    if target.exists() and not overwrite:
        return target

    template = (
        "# Project-scoped environment for echo_wallet\n"
        "EW_MAX_ATTEMPTS=3\n"
        "EW_MIN_AMOUNT=0.000001\n"
        "EW_MAX_AMOUNT=1000\n"
        "EW_CONFIDENCE_THRESHOLD=0.7\n"
        "EW_MESSAGE_PROFILE=standard\n"
        "ASR_MODEL=whisper-1\n"
        "OPENAI_TIMEOUT=60\n"
        "MAX_RETRIES=3\n"
        "# OPENAI_API_KEY=your-key-here\n"
    )
    target.write_text(template, encoding="utf-8")
    return target


def load_project_env(project_root: Optional[str] = None, filename: str = DEFAULT_ENV_FILENAME, override: bool = False) -> Optional[str]:
    """
    Load a project-scoped environment file, if available.

    Load order (first match wins):
    1) Explicit env file path via EW_ENV_FILE
    2) <project_root>/.echo_wallet/<filename> (default: .env)

    Returns the path loaded, or None if nothing was loaded.
    """
    for var in ENV_FILE_ENV_VARS:
        explicit = os.getenv(var)
        if explicit and Path(explicit).is_file():
            load_config(explicit, override=override)
            return explicit

    if project_root is None:
        for var in PROJECT_ROOT_ENV_VARS:
            if os.getenv(var):
                project_root = os.getenv(var)
                break
    if project_root is None:
        detected = detect_project_root()
        project_root = str(detected) if detected else None

    if project_root:
        env_path = get_project_env_path(project_root, filename)
        if env_path.exists():
            load_config(str(env_path), override=override)
            return str(env_path)

    return None


@lru_cache(maxsize=1)
def get_client() -> OpenAI:
    """
    Get configured OpenAI client with timeout and retry settings.

    Behavior:
    - Does not implicitly load a .env from the current working directory.
    - If OPENAI_API_KEY is missing, attempts to load a project-scoped env:
      EW_ENV_FILE → <project>/.echo_wallet/.env

    Returns:
        OpenAI client instance

    Raises:
        ConfigError: If API key is not configured after project env lookup
    """
    if not os.getenv("OPENAI_API_KEY"):
        loaded_path = load_project_env()
        if not os.getenv("OPENAI_API_KEY"):
            where = loaded_path or f"{METADATA_DIRNAME}/{DEFAULT_ENV_FILENAME}"
            raise ConfigError(
                f"OPENAI_API_KEY not found in environment. Looked for project env at {where}. "
                f"Set it via environment, EW_ENV_FILE, or place it under {METADATA_DIRNAME}/{DEFAULT_ENV_FILENAME}."
            )
    try:
        return OpenAI(
            api_key=config.openai_api_key,
            timeout=config.openai_timeout,
            max_retries=config.max_retries,
        )
    except Exception as e:
        raise ConfigError(f"Failed to create OpenAI client: {e}")
