"""
Main CLI interface for Echo Wallet voice commands.

This module provides the Typer-based command-line interface with commands for:
- Inspecting the pipeline (normalize, parse, check-amount)
- A typed conversation with the voice assistant (chat)
- Audio file processing with Whisper (from-audio)
- Contact book management (contacts list/add/remove)
"""

import json
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .core.amount import extract_amount, validate_amount
from .core.config import ConfigError, config, get_contacts_path, load_project_env
from .core.contacts import ContactBook, ContactBookError
from .core.intent import parse as parse_intent
from .core.messages import format_address_for_speech
from .core.normalize import Normalizer
from .core.session import ManualScheduler, VoiceSession
from .core.speech import ConsoleSpeaker, SpeechError, SpeechProcessor, validate_audio_format
from .core.wallet import DemoWallet

app = typer.Typer(
    name="echo-wallet",
    help="Echo Wallet CLI - Turn spoken commands into confirmed ETH transfers",
    no_args_is_help=True,
)
contacts_app = typer.Typer(help="Manage the contact book used to resolve spoken recipients", no_args_is_help=True)
app.add_typer(contacts_app, name="contacts")

console = Console()


def _configure_logging(debug: bool) -> None:
    """Route log records through rich; the CLI flag always overrides .env for EW_DEBUG."""
    if debug:
        os.environ["EW_DEBUG"] = "1"
    elif os.environ.get("EW_DEBUG") != "1":
        os.environ["EW_DEBUG"] = "0"

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False, rich_tracebacks=True)],
        force=True,
    )


def _load_contacts(project_root: Optional[str]) -> ContactBook:
    return ContactBook(get_contacts_path(project_root), fuzzy_threshold=config.fuzzy_threshold)


def _echo_json(data: dict) -> None:
    typer.echo(json.dumps(data, indent=2, ensure_ascii=False))


@app.command()
def normalize(
    text: str = typer.Argument(..., help="Raw transcript text"),
    project_root: Optional[str] = typer.Option(None, "--project-root", help="Project root with .echo_wallet/lexicon overrides"),
    lang: str = typer.Option("en", "--lang", help="Transcript language (en, zh)"),
    output_format: str = typer.Option("rich", "--format", "-f", help="Output format (rich, json)"),
):
    """
    Show the normalized form of a transcript.

    Examples:
        echo-wallet normalize "transfur zero point zero zero five e t h to alice"
    """
    normalized = Normalizer.for_project(project_root, lang).normalize(text)
    if output_format == "json":
        _echo_json({"raw": text, "normalized": normalized})
        return
    console.print(Panel(normalized or "(empty)", title="Normalized", border_style="green"))


@app.command()
def parse(
    text: str = typer.Argument(..., help="Raw transcript text"),
    project_root: Optional[str] = typer.Option(None, "--project-root", help="Project root with .echo_wallet/lexicon overrides"),
    lang: str = typer.Option("en", "--lang", help="Transcript language (en, zh)"),
    output_format: str = typer.Option("rich", "--format", "-f", help="Output format (rich, json)"),
):
    """
    Normalize a transcript and show the parsed intent.

    Examples:
        echo-wallet parse "send 0.1 eth to alice"
        echo-wallet parse "what's my balance" --format json
    """
    normalized = Normalizer.for_project(project_root, lang).normalize(text)
    intent = parse_intent(normalized)
    if output_format == "json":
        _echo_json({"normalized": normalized, "intent": intent.model_dump(mode="json")})
        return

    table = Table(show_header=False, box=None)
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Normalized", normalized)
    for key, value in intent.model_dump(mode="json").items():
        table.add_row(key, json.dumps(value) if isinstance(value, dict) else str(value))
    console.print(table)


@app.command("check-amount")
def check_amount(
    text: str = typer.Argument(..., help="Spoken or typed amount"),
    project_root: Optional[str] = typer.Option(None, "--project-root", help="Project root whose .echo_wallet/.env sets EW_MIN_AMOUNT and EW_MAX_AMOUNT"),
    output_format: str = typer.Option("rich", "--format", "-f", help="Output format (rich, json)"),
):
    """
    Validate a transfer amount against the configured limits.

    Exits with status 1 when the amount is rejected.

    Examples:
        echo-wallet check-amount "zero point one"
        echo-wallet check-amount 1500
    """
    load_project_env(project_root)
    try:
        limits = config.dialogue_limits()
    except ConfigError as e:
        console.print(f"[bold red]Configuration Error:[/bold red] {e}")
        sys.exit(1)

    result = validate_amount(extract_amount(Normalizer.for_project(project_root).normalize(text)), limits)
    if output_format == "json":
        _echo_json(result.model_dump(mode="json"))
    elif result.valid:
        console.print(f"[bold green]Valid:[/bold green] {result.canonical} ETH")
    else:
        console.print(f"[bold red]Rejected ({result.code.value}):[/bold red] {result.reason}")

    if not result.valid:
        sys.exit(1)


@app.command()
def chat(
    project_root: str = typer.Option(".", "--project-root", help="Project root for contacts, lexicon overrides and debug logs"),
    balance: str = typer.Option("1.5", "--balance", help="Starting balance of the demo wallet"),
    no_wallet: bool = typer.Option(False, "--no-wallet", help="Start without a wallet (say 'create wallet' first)"),
    lang: str = typer.Option("en", "--lang", help="Language of the typed utterances (en, zh)"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging and JSON session traces"),
):
    """
    Talk to the assistant by typing utterances.

    Transfers go to an in-memory demo wallet; nothing is signed or sent.
    An empty line stands for silence. Type /state to see the dialogue
    state, /cancel to abort it and /quit to leave.

    Examples:
        echo-wallet chat
        echo-wallet chat --project-root /path/to/project --debug
    """
    load_project_env(project_root)
    _configure_logging(debug)
    try:
        contacts = _load_contacts(project_root)
        wallet = DemoWallet(balance=balance)
        if not no_wallet:
            wallet.create_wallet()
        scheduler = ManualScheduler()
        session = VoiceSession.from_config(ConsoleSpeaker(console), wallet, contacts, wallet=wallet, scheduler=scheduler, project_root=project_root)
    except (ConfigError, ContactBookError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)

    console.print("[dim]Say something (empty line = silence, /quit to exit).[/dim]")
    while True:
        try:
            line = console.input("[bold]🎤 > [/bold]")
        except (EOFError, KeyboardInterrupt):
            break

        command = line.strip()
        if command == "/quit":
            break
        if command == "/state":
            console.print_json(session.get_dialogue_snapshot().model_dump_json())
            continue
        if command == "/cancel":
            session.cancel()
            continue

        session.handle_utterance(line, lang_hint=lang)
        if command:
            scheduler.run_pending()
        else:
            scheduler.advance(session.reprompt_delay)


@app.command("from-audio")
def from_audio(
    path: str = typer.Argument(..., help="Path to audio file"),
    project_root: Optional[str] = typer.Option(None, "--project-root", help="Project root with .echo_wallet/lexicon overrides"),
    output_format: str = typer.Option("rich", "--format", "-f", help="Output format (rich, json)"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
):
    """
    Transcribe an audio command with Whisper and show how it is understood.

    Examples:
        echo-wallet from-audio command.wav
        echo-wallet from-audio command.m4a --format json
    """
    load_project_env(project_root)
    _configure_logging(debug)
    try:
        audio_path = Path(path)
        if not audio_path.exists():
            console.print(f"[bold red]Error:[/bold red] Audio file not found: {path}")
            sys.exit(1)

        if not validate_audio_format(path):
            console.print(f"[bold red]Error:[/bold red] Unsupported audio format: {audio_path.suffix}")
            console.print("Supported formats: .mp3, .mp4, .mpeg, .mpga, .m4a, .wav, .webm")
            sys.exit(1)

        with console.status("Transcribing…"):
            transcript = SpeechProcessor().transcribe_audio(path)

        normalized = Normalizer.for_project(project_root, transcript.lang_hint).normalize(transcript.text)
        intent = parse_intent(normalized)

        if output_format == "json":
            _echo_json({"transcript": transcript.model_dump(mode="json"), "normalized": normalized, "intent": intent.model_dump(mode="json")})
            return

        console.print(f"[dim]Transcript (detected: {transcript.lang_hint}, confidence: {transcript.confidence:.2f}):[/dim]")
        console.print(Panel(transcript.text))
        if transcript.confidence < config.confidence_threshold:
            console.print("[yellow]Low confidence: a live session would ignore this utterance.[/yellow]")
        console.print(f"[bold]Normalized:[/bold] {normalized}")
        console.print(f"[bold]Intent:[/bold] {intent.kind}")
        console.print_json(intent.model_dump_json())

    except SpeechError as e:
        message = e.spoken_message or "No speech detected."
        console.print(f"[bold red]Speech Error:[/bold red] {message}")
        logging.getLogger(__name__).debug(f"Recognition failure detail: {e}")
        sys.exit(1)
    except ConfigError as e:
        console.print(f"[bold red]Configuration Error:[/bold red] {e}")
        sys.exit(1)


@contacts_app.command("list")
def contacts_list(
    project_root: str = typer.Option(".", "--project-root", help="Project root holding .echo_wallet/contacts.json"),
    frequent: bool = typer.Option(False, "--frequent", help="Only show the most used contacts"),
):
    """List saved contacts."""
    load_project_env(project_root)
    try:
        book = _load_contacts(project_root)
    except ContactBookError as e:
        console.print(f"[bold red]Contact Book Error:[/bold red] {e}")
        sys.exit(1)

    contacts = book.frequent() if frequent else book.contacts()
    if not contacts:
        console.print("[yellow]No contacts saved[/yellow]")
        return

    table = Table(title="Contacts")
    table.add_column("Name", style="cyan")
    table.add_column("Nickname")
    table.add_column("Address", style="white")
    table.add_column("Tags")
    table.add_column("Used", justify="right")
    table.add_column("ID", style="dim")
    for contact in contacts:
        table.add_row(
            contact.name,
            contact.nickname or "",
            format_address_for_speech(contact.address),
            ", ".join(contact.tags),
            str(contact.usage_count),
            contact.id[:8],
        )
    console.print(table)


@contacts_app.command("add")
def contacts_add(
    name: str = typer.Argument(..., help="Contact name as it will be spoken"),
    address: str = typer.Argument(..., help="Chain address (0x + 40 hex characters)"),
    nickname: Optional[str] = typer.Option(None, "--nickname", "-n", help="Alternative spoken name"),
    tags: Optional[List[str]] = typer.Option(None, "--tag", "-t", help="Tag (repeatable)"),
    project_root: str = typer.Option(".", "--project-root", help="Project root holding .echo_wallet/contacts.json"),
):
    """
    Add a contact.

    Examples:
        echo-wallet contacts add alice 0x742d35Cc6634C0532925a3b844Bc454e4438f44e --nickname ally --tag family
    """
    load_project_env(project_root)
    try:
        book = _load_contacts(project_root)
        contact = book.add_contact(name, address, nickname=nickname, tags=tags or [])
    except ContactBookError as e:
        console.print(f"[bold red]Contact Book Error:[/bold red] {e}")
        sys.exit(1)
    console.print(f"[bold green]Added[/bold green] {contact.name} ({format_address_for_speech(contact.address)})")


@contacts_app.command("remove")
def contacts_remove(
    name_or_id: str = typer.Argument(..., help="Contact id (or id prefix) or name"),
    project_root: str = typer.Option(".", "--project-root", help="Project root holding .echo_wallet/contacts.json"),
):
    """Remove a contact by id, id prefix or exact name."""
    load_project_env(project_root)
    try:
        book = _load_contacts(project_root)
        target = next(
            (c for c in book.contacts() if c.id.startswith(name_or_id) or c.name.lower() == name_or_id.lower()),
            None,
        )
        if target is None:
            console.print(f"[yellow]No contact matches '{name_or_id}'[/yellow]")
            sys.exit(1)
        book.remove_contact(target.id)
    except ContactBookError as e:
        console.print(f"[bold red]Contact Book Error:[/bold red] {e}")
        sys.exit(1)
    console.print(f"[bold green]Removed[/bold green] {target.name}")


if __name__ == "__main__":
    app()
