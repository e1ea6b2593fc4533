"""
Lexicon tables for transcript normalization.

A lexicon maps spoken surface variants to a canonical form, e.g. "e t h" to
"eth" or "wallit" to "wallet". Tables ship as package data under
data/lexicons/{lang}/{table}.json and can be extended per project with
{project_root}/.echo_wallet/lexicon/{lang}/{table}.json. Project entries win
over builtin ones. English tables are the base for every language; "zh" adds
Chinese token names, command words and misrecognized numerals.
"""

import json
import re
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional, Pattern, Union

# Tables understood by the normalizer, in the order they are applied
LEXICON_TABLES = ("numerals", "tokens", "keywords")

DEFAULT_LANGUAGE = "en"
# Speech-engine language hints (Whisper reports names such as "chinese")
LANGUAGE_ALIASES = {
    "en": "en",
    "english": "en",
    "zh": "zh",
    "chinese": "zh",
    "mandarin": "zh",
    "cmn": "zh",
}

# Token normalization patterns
PUNCTUATION_PATTERN = re.compile(r"[^\w\s\-_]")
WHITESPACE_PATTERN = re.compile(r"\s+")
ASCII_WORD_PATTERN = re.compile(r"[a-z0-9_]")


def _validate_table(data: object) -> Dict[str, List[str]]:
    """Keep only string keys mapped to non-empty lists of strings; lowercase the keys."""
    if not isinstance(data, dict):
        return {}

    validated = {}
    for key, value in data.items():
        if isinstance(key, str) and isinstance(value, list) and value:
            if all(isinstance(v, str) for v in value):
                validated[key.strip().lower()] = [v.strip().lower() for v in value]
    return validated


def _read_table(path: Path) -> Dict[str, List[str]]:
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            return _validate_table(json.load(f))
    except (OSError, ValueError):
        return {}


def language_code(hint: Optional[str]) -> str:
    """
    Map a language code or speech-engine hint to a lexicon language.

    Region suffixes are ignored ("zh-CN" -> "zh"). Unknown hints, "auto" and
    None fall back to English.
    """
    if not hint:
        return DEFAULT_LANGUAGE
    key = hint.strip().lower().replace("_", "-")
    return LANGUAGE_ALIASES.get(key) or LANGUAGE_ALIASES.get(key.split("-")[0], DEFAULT_LANGUAGE)


@lru_cache(maxsize=16)
def load_builtin_lexicon(table: str, lang: str = "en") -> Dict[str, List[str]]:
    """
    Load JSON from package data: data/lexicons/{lang}/{table}.json if present, else {}.

    Args:
        table: Table name (numerals, tokens, keywords)
        lang: Language code

    Returns:
        Dictionary mapping surface variants to canonical forms (first entry wins)
    """
    package_dir = Path(__file__).parent.parent
    return _read_table(package_dir / "data" / "lexicons" / lang / f"{table}.json")


def load_project_lexicon(project_root: Union[str, Path], table: str, lang: str = "en") -> Dict[str, List[str]]:
    """
    Load {project_root}/.echo_wallet/lexicon/{lang}/{table}.json if present, else {}.
    """
    return _read_table(Path(project_root) / ".echo_wallet" / "lexicon" / lang / f"{table}.json")


def merge_lexicons(builtin: Dict[str, List[str]], override: Dict[str, List[str]]) -> Dict[str, List[str]]:
    """
    Merge builtin and override lexicons. Override wins for conflicts.
    """
    merged = builtin.copy()
    merged.update(override)
    return merged


def load_lexicon(table: str, lang: str = "en", project_root: Optional[Union[str, Path]] = None) -> Dict[str, str]:
    """
    Load a table as a flat variant -> canonical mapping.

    Entries whose variant equals their canonical form are dropped, so a
    table can never rewrite a word into itself.
    """
    merged = load_builtin_lexicon(table, lang)
    if project_root is not None:
        merged = merge_lexicons(merged, load_project_lexicon(project_root, table, lang))
    return {variant: anchors[0] for variant, anchors in merged.items() if variant and variant != anchors[0]}


def compile_variant_pattern(variants: Dict[str, str]) -> Optional[Pattern[str]]:
    """
    Build one alternation regex over all variants, longest first.

    Ordering the alternatives by length makes the more specific variant win
    whenever a short variant is a substring of a longer one. An ASCII letter
    or digit at either end of a variant must sit on a word boundary there.
    Chinese text has no spaces, so "以太" or "给" match anywhere, including
    right before a Latin name ("给alice").

    Returns:
        Compiled pattern, or None if there are no variants
    """
    if not variants:
        return None

    # Sort by length, then alphabetically, so the order is deterministic
    ordered = sorted(variants, key=lambda v: (-len(v), v))
    return re.compile("|".join(_variant_regex(v) for v in ordered))


def _variant_regex(variant: str) -> str:
    regex = re.escape(variant).replace(r"\ ", r"\s+")
    if ASCII_WORD_PATTERN.match(variant[0]):
        regex = rf"(?<![a-z0-9_]){regex}"
    if ASCII_WORD_PATTERN.match(variant[-1]):
        regex = rf"{regex}(?![a-z0-9_])"
    return regex


def apply_variants(text: str, variants: Dict[str, str], pattern: Optional[Pattern[str]] = None) -> str:
    """
    Replace every variant occurrence in text with its canonical form.

    Non-ASCII variants are replaced with a space on either side so the
    canonical form becomes a separate word ("转账给" -> " transfer  to ").
    """
    if not text or not variants:
        return text

    pattern = pattern or compile_variant_pattern(variants)
    if pattern is None:
        return text

    def replace(match: "re.Match[str]") -> str:
        found = WHITESPACE_PATTERN.sub(" ", match.group(0))
        if found not in variants:
            return match.group(0)
        if not found.isascii():
            return f" {variants[found]} "
        return variants[found]

    return pattern.sub(replace, text)


def tokenize_normalize(text: str) -> List[str]:
    """
    Lowercase, strip punctuation, collapse spaces; return tokens.

    Args:
        text: Input text to tokenize and normalize

    Returns:
        List of normalized tokens
    """
    if not text:
        return []

    normalized = text.lower()
    normalized = PUNCTUATION_PATTERN.sub(" ", normalized)
    normalized = WHITESPACE_PATTERN.sub(" ", normalized)

    return [token for token in normalized.split() if token]
