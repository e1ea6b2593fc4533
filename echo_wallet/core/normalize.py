"""
Transcript normalization for voice commands.

Rewrites a raw speech transcript into a canonical form before any parsing:

1. lowercase, trim and collapse whitespace
2. numeral variants ("decimal" -> "point", "灵点" -> "零点")
3. Chinese numerals to digits ("零点零零五" -> "0.005", "一百二十" -> "120")
4. spoken numerals to digits ("zero point zero zero five" -> "0.005")
5. token-name variants to the canonical symbol ("e t h", "ether", "以太" -> "eth")
6. misheard domain keywords to their spelling ("wallit" -> "wallet")

The order is fixed: each stage works on the output of the previous one.
Normalization is pure and idempotent, and never raises.
"""

import re
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from .lexicon import (
    DEFAULT_LANGUAGE,
    LEXICON_TABLES,
    WHITESPACE_PATTERN,
    apply_variants,
    compile_variant_pattern,
    language_code,
    load_lexicon,
)
from .timing import timer

UNITS = {
    "zero": 0,
    "one": 1,
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
    "six": 6,
    "seven": 7,
    "eight": 8,
    "nine": 9,
}
TEENS = {
    "ten": 10,
    "eleven": 11,
    "twelve": 12,
    "thirteen": 13,
    "fourteen": 14,
    "fifteen": 15,
    "sixteen": 16,
    "seventeen": 17,
    "eighteen": 18,
    "nineteen": 19,
}
TENS = {
    "twenty": 20,
    "thirty": 30,
    "forty": 40,
    "fifty": 50,
    "sixty": 60,
    "seventy": 70,
    "eighty": 80,
    "ninety": 90,
}
SCALES = {"hundred": 100, "thousand": 1000, "million": 1000000}

NUMBER_WORDS = {**UNITS, **TEENS, **TENS, **SCALES}
# Words that can end a number below one hundred; a tens or teens word after
# one of them starts a new number ("twenty twenty" is 20 20, not 40)
SMALL_NUMBERS = {**UNITS, **TEENS, **TENS}
DECIMAL_MARKERS = {"point", "dot", "."}

CJK_DIGITS = {
    "零": 0,
    "〇": 0,
    "一": 1,
    "二": 2,
    "两": 2,
    "三": 3,
    "四": 4,
    "五": 5,
    "六": 6,
    "七": 7,
    "八": 8,
    "九": 9,
}
CJK_SCALES = {"十": 10, "百": 100, "千": 1000}
CJK_MYRIAD = {"万": 10000}
CJK_POINT = "点"

_CJK_INTEGER = "".join([*CJK_DIGITS, *CJK_SCALES, *CJK_MYRIAD])
_UNIT_WORDS = "|".join(UNITS)
# One fractional digit: a Chinese digit, an ASCII digit or an English digit word
_CJK_FRACTION_DIGIT = rf"[{''.join(CJK_DIGITS)}]|\d|(?<![a-z])(?:{_UNIT_WORDS})(?![a-z])"
CJK_FRACTION_DIGIT_PATTERN = re.compile(_CJK_FRACTION_DIGIT)
CJK_NUMBER_PATTERN = re.compile(
    rf"(?:(?P<integer>\d+|[{_CJK_INTEGER}]+)|(?={CJK_POINT}))"
    rf"(?:\s*{CJK_POINT}\s*(?P<fraction>(?:{_CJK_FRACTION_DIGIT})(?:\s*(?:{_CJK_FRACTION_DIGIT}))*))?"
)

INTEGER_PATTERN = re.compile(r"^\d+$")
# Trailing punctuation stays attached to the token it follows
TOKEN_PATTERN = re.compile(r"^(.*?)([,.!?;:]*)$")


def _split_token(token: str) -> Tuple[str, str]:
    match = TOKEN_PATTERN.match(token)
    core, punct = match.group(1), match.group(2)  # type: ignore[union-attr]
    if not core and punct == ".":
        # A bare "." is a decimal marker, not punctuation
        return ".", ""
    return core, punct


def _is_number(core: str) -> bool:
    return core in NUMBER_WORDS or bool(INTEGER_PATTERN.match(core))


def _compose_integer(words: List[str]) -> str:
    """
    Turn integer number words (and plain digits) into a digit string.

    A sequence of two or more single digits is read digit by digit
    ("one two three" -> "123"); anything else is composed arithmetically
    ("twenty five" -> "25", "two hundred and five" -> "205").
    """
    if len(words) > 1 and all(w in UNITS or (INTEGER_PATTERN.match(w) and len(w) == 1) for w in words):
        return "".join(str(UNITS.get(w, w)) for w in words)

    total = 0
    current = 0
    for word in words:
        if word in SCALES:
            scale = SCALES[word]
            if scale == 100:
                current = max(current, 1) * scale
            else:
                total += max(current, 1) * scale
                current = 0
        elif word in NUMBER_WORDS:
            current += NUMBER_WORDS[word]
        else:
            current += int(word)
    return str(total + current)


def _compose_fraction(words: List[str]) -> str:
    if all(w in UNITS or INTEGER_PATTERN.match(w) for w in words):
        return "".join(str(UNITS.get(w, w)) for w in words)
    return _compose_integer(words)


def _convert_run(cores: List[str]) -> Optional[str]:
    """Convert one run of numeral tokens; None means leave the run untouched."""
    has_word = any(c in NUMBER_WORDS for c in cores)
    has_point = any(c in DECIMAL_MARKERS for c in cores)
    if not has_word and not has_point:
        return None

    words = [c for c in cores if c != "and"]
    if has_point:
        marker = next(i for i, c in enumerate(words) if c in DECIMAL_MARKERS)
        integer_part = _compose_integer(words[:marker]) if marker else "0"
        return f"{integer_part}.{_compose_fraction(words[marker + 1:])}"
    return _compose_integer(words)


def _compose_cjk_integer(chars: str) -> str:
    """
    Turn a run of Chinese numerals into a digit string.

    Without scale characters the run is read digit by digit ("一二三" -> "123");
    otherwise it is composed ("二十" -> "20", "一百零五" -> "105", "十五" -> "15").
    """
    if INTEGER_PATTERN.match(chars):
        return chars
    if not any(c in CJK_SCALES or c in CJK_MYRIAD for c in chars):
        return str(int("".join(str(CJK_DIGITS[c]) for c in chars)))

    total = 0
    section = 0
    current = 0
    for char in chars:
        if char in CJK_DIGITS:
            current = CJK_DIGITS[char]
        elif char in CJK_SCALES:
            section += max(current, 1) * CJK_SCALES[char]
            current = 0
        else:
            total += max(section + current, 1) * CJK_MYRIAD[char]
            section = 0
            current = 0
    return str(total + section + current)


def _cjk_fraction_digit(token: str) -> str:
    if token in CJK_DIGITS:
        return str(CJK_DIGITS[token])
    return str(UNITS.get(token, token))


def _replace_cjk_number(match: "re.Match[str]") -> str:
    text = match.group(0)
    if not any(c in _CJK_INTEGER or c == CJK_POINT for c in text):
        return text

    integer = match.group("integer")
    fraction = match.group("fraction")
    if fraction is None:
        if integer is None:
            return text
        return f" {_compose_cjk_integer(integer)} "

    digits = "".join(_cjk_fraction_digit(d) for d in CJK_FRACTION_DIGIT_PATTERN.findall(fraction))
    integer_part = _compose_cjk_integer(integer) if integer else "0"
    return f" {integer_part}.{digits} "


def convert_cjk_numbers(text: str) -> str:
    """
    Convert Chinese numerals, including mixed forms, to digit strings.

    "点" is the decimal point. Digits after it may be Chinese, ASCII or English
    words ("零点zero zero五" -> "0.005", "1点5" -> "1.5"). Converted numbers are
    padded with spaces so they never fuse with the surrounding characters.
    """
    if not text:
        return text
    return CJK_NUMBER_PATTERN.sub(_replace_cjk_number, text)


def convert_spoken_numbers(text: str) -> str:
    """
    Compose runs of number words into digit strings.

    A run is a maximal sequence of number words and integer digits, with at
    most one decimal marker ("point", "dot", ".") that is followed by a
    number, and "and" only after a scale word ("one hundred and five"). A
    tens or teens word right after a smaller number word starts a new run.
    Punctuation after a token closes the run. Runs made only of digits are
    left as they are.
    """
    tokens = text.split()
    parts = [_split_token(t) for t in tokens]
    output: List[str] = []
    i = 0

    while i < len(tokens):
        core, punct = parts[i]
        starts_run = _is_number(core) or (core in DECIMAL_MARKERS and i + 1 < len(tokens) and _is_number(parts[i + 1][0]))
        if not starts_run:
            output.append(tokens[i])
            i += 1
            continue

        run = [core]
        seen_point = core in DECIMAL_MARKERS
        last_punct = punct
        j = i + 1
        while j < len(tokens) and not last_punct:
            nxt, nxt_punct = parts[j]
            following = parts[j + 1][0] if j + 1 < len(tokens) else ""
            if _is_number(nxt):
                if (nxt in TENS or nxt in TEENS) and run[-1] in SMALL_NUMBERS:
                    break
            elif nxt in DECIMAL_MARKERS and not seen_point and _is_number(following):
                seen_point = True
            elif nxt == "and" and not seen_point and run[-1] in SCALES and following in NUMBER_WORDS and not nxt_punct:
                pass
            else:
                break
            run.append(nxt)
            last_punct = nxt_punct
            j += 1

        converted = _convert_run(run)
        if converted is None:
            output.extend(tokens[i:j])
        else:
            output.append(converted + last_punct)
        i = j

    return " ".join(output)


class Normalizer:
    """
    Applies the normalization stages with a fixed set of lexicon tables.

    Use ``Normalizer.for_project`` to include per-project lexicon overrides
    and the tables of a non-English language.
    """

    def __init__(self, numerals: Dict[str, str], tokens: Dict[str, str], keywords: Dict[str, str]):
        self.numerals = numerals
        self.tokens = tokens
        self.keywords = keywords
        self._numeral_pattern = compile_variant_pattern(numerals)
        self._token_pattern = compile_variant_pattern(tokens)
        self._keyword_pattern = compile_variant_pattern(keywords)

    @classmethod
    def for_project(cls, project_root: Optional[Union[str, Path]] = None, lang: Optional[str] = DEFAULT_LANGUAGE) -> "Normalizer":
        """
        Build a normalizer from the builtin and project lexicons.

        English tables are always loaded, since transcripts in other
        languages still mix in English words and symbols. Tables of ``lang``
        (a code or a speech-engine hint such as "chinese") are layered on top.
        """
        code = language_code(lang)
        tables = {}
        for table in LEXICON_TABLES:
            variants = load_lexicon(table, DEFAULT_LANGUAGE, project_root)
            if code != DEFAULT_LANGUAGE:
                variants = {**variants, **load_lexicon(table, code, project_root)}
            tables[table] = variants
        return cls(**tables)

    @timer
    def normalize(self, text: str) -> str:
        if not text:
            return ""

        result = WHITESPACE_PATTERN.sub(" ", text.strip().lower())
        if not result:
            return ""

        result = apply_variants(result, self.numerals, self._numeral_pattern)
        result = convert_cjk_numbers(result)
        result = convert_spoken_numbers(result)
        result = apply_variants(result, self.tokens, self._token_pattern)
        result = apply_variants(result, self.keywords, self._keyword_pattern)
        return WHITESPACE_PATTERN.sub(" ", result).strip()


@lru_cache(maxsize=4)
def get_normalizer(lang: str = DEFAULT_LANGUAGE) -> Normalizer:
    """Normalizer built from the builtin lexicons only."""
    return Normalizer.for_project(None, lang)


def normalize(text: str, lang: str = DEFAULT_LANGUAGE) -> str:
    """
    Normalize a raw transcript with the builtin lexicons.

    Args:
        text: Raw transcript from the speech engine
        lang: Language code or speech-engine language hint

    Returns:
        Canonical form of the transcript (empty for empty input)
    """
    return get_normalizer(language_code(lang)).normalize(text)
