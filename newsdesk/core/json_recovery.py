"""Recovery of structured JSON values from LLM completions.

Completions that are supposed to be JSON frequently arrive wrapped in prose,
fenced in markdown, or with small syntax slips. ``recover`` runs a layered
pipeline and returns the first value any layer can decode:

1. bracket scan: the first balanced ``{...}`` or ``[...]`` span that decodes
   (directly, or after cleanup)
2. direct decode of the trimmed text
3. fenced block extraction (```json, ``` or inline backticks)
4. cleanup of common formatting damage, then decode

No layer raises past ``recover``; failures come back as a ``ParseOutcome``.
"""

import json
import logging
import re
from typing import Any, Iterator, Optional

from newsdesk.models.content import ParseOutcome

logger = logging.getLogger(__name__)

INVALID_INPUT_REASON = "Invalid input: text must be a non-empty string"
EXHAUSTED_REASON = "Unable to parse JSON from text after trying all fallback methods"

# Spans shorter than this cannot hold a key/value pair.
MIN_CANDIDATE_LENGTH = 6

# Work caps for the bracket scan. Each start position walks to the end of
# the text in the worst case, so stray brackets in long prose go quadratic.
MAX_SCAN_CANDIDATES = 256
MAX_SCAN_STEPS = 2_000_000

_OPENERS = "{["
_CLOSERS = "}]"

_FENCE_PATTERNS = [
    re.compile(r"```json\s*\n?([\s\S]*?)\n?\s*```", re.IGNORECASE),
    re.compile(r"```[a-zA-Z]*\s*\n?([\s\S]*?)\n?\s*```"),
    re.compile(r"`([^`]+)`"),
]

_ZERO_WIDTH = re.compile(r"[\u200b-\u200d\u2060\ufeff]")
_HTML_TAG = re.compile(r"<[^>]*>")
_DOUBLE_QUOTES = re.compile(r"[\u201c\u201d\u201e\u201f\u2033]")
_SINGLE_QUOTES = re.compile(r"[\u2018\u2019\u201a\u201b\u2032]")
_BOLD_WRAP = re.compile(r"^\*\*(.+)\*\*$", re.DOTALL)
_ITALIC_WRAP = re.compile(r"^\*(.+)\*$", re.DOTALL)
_SEMICOLON_SEPARATOR = re.compile(
    r'("|\d|\]|\}|\btrue|\bfalse|\bnull)\s*;\s*(?=["{\[])'
)
_DOUBLED_COMMA = re.compile(r",(\s*,)+")
_DOUBLED_COLON = re.compile(r'"\s*:\s*:')
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")


def _try_decode(candidate: str) -> Any:
    """Decode ``candidate`` or raise ``ValueError``."""
    return json.loads(candidate)


def _scan_balanced(text: str, start: int, budget: list) -> Optional[str]:
    """Walk from ``start`` to the point where bracket depth returns to zero.

    Brackets inside double-quoted strings are ignored and a backslash
    escapes the following character. ``budget`` is a one-item list holding
    the remaining step allowance shared across all starts.
    """
    depth = 0
    in_string = False
    escape_next = False

    for index in range(start, len(text)):
        budget[0] -= 1
        if budget[0] < 0:
            return None

        char = text[index]
        if escape_next:
            escape_next = False
            continue
        if char == "\\":
            escape_next = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue

        if char in _OPENERS:
            depth += 1
        elif char in _CLOSERS:
            depth -= 1
            if depth == 0:
                return text[start : index + 1]

    return None


def iter_json_candidates(text: str) -> Iterator[str]:
    """Yield balanced bracket spans that look like JSON, in text order."""
    budget = [MAX_SCAN_STEPS]
    starts = 0

    for index, char in enumerate(text):
        if char not in _OPENERS:
            continue
        starts += 1
        if starts > MAX_SCAN_CANDIDATES or budget[0] <= 0:
            logger.debug(
                f"Bracket scan stopped after {starts - 1} start positions"
            )
            return

        span = _scan_balanced(text, index, budget)
        if span is None:
            continue
        if len(span) < MIN_CANDIDATE_LENGTH or '"' not in span:
            continue
        yield span


def extract_first_json_object(text: str) -> Optional[str]:
    """Return the first balanced JSON-looking span in ``text``, if any."""
    return next(iter_json_candidates(text), None)


def extract_fenced_json(text: str) -> Optional[str]:
    """Return the body of the first code fence that holds a JSON container."""
    for pattern in _FENCE_PATTERNS:
        for match in pattern.finditer(text):
            extracted = match.group(1).strip()
            if (extracted.startswith("{") and extracted.endswith("}")) or (
                extracted.startswith("[") and extracted.endswith("]")
            ):
                return extracted
    return None


def clean_json_string(text: str) -> str:
    """Undo the formatting damage LLMs most often do to JSON."""
    cleaned = text.strip()
    cleaned = _BOLD_WRAP.sub(r"\1", cleaned)
    cleaned = _ITALIC_WRAP.sub(r"\1", cleaned)
    cleaned = _HTML_TAG.sub("", cleaned)
    cleaned = _ZERO_WIDTH.sub("", cleaned)
    cleaned = _DOUBLE_QUOTES.sub('"', cleaned)
    cleaned = _SINGLE_QUOTES.sub("'", cleaned)
    cleaned = _SEMICOLON_SEPARATOR.sub(r"\1,", cleaned)
    cleaned = _DOUBLED_COMMA.sub(",", cleaned)
    cleaned = _DOUBLED_COLON.sub('":', cleaned)
    cleaned = _TRAILING_COMMA.sub(r"\1", cleaned)
    return cleaned.strip()


def _from_bracket_scan(text: str) -> Optional[ParseOutcome]:
    for candidate in iter_json_candidates(text):
        try:
            return ParseOutcome.ok(_try_decode(candidate))
        except ValueError:
            pass
        try:
            return ParseOutcome.ok(_try_decode(clean_json_string(candidate)))
        except ValueError:
            continue
    return None


def _from_whole_text(text: str) -> Optional[ParseOutcome]:
    try:
        return ParseOutcome.ok(_try_decode(text))
    except ValueError:
        return None


def _from_fence(text: str) -> Optional[ParseOutcome]:
    fenced = extract_fenced_json(text)
    if fenced is None:
        return None
    try:
        return ParseOutcome.ok(_try_decode(fenced))
    except ValueError:
        return None


def _from_cleanup(text: str) -> Optional[ParseOutcome]:
    try:
        return ParseOutcome.ok(_try_decode(clean_json_string(text)))
    except ValueError:
        return None


_LAYERS = [
    ("bracket scan", _from_bracket_scan),
    ("direct decode", _from_whole_text),
    ("fenced block", _from_fence),
    ("cleanup", _from_cleanup),
]


def recover(text: Any) -> ParseOutcome:
    """Recover a JSON value from text that is probably JSON.

    Args:
        text: Raw completion text. Non-strings and empty strings fail
            immediately.

    Returns:
        ParseOutcome with the decoded value, or with a failure reason and
        the untouched input.
    """
    if not text or not isinstance(text, str):
        return ParseOutcome.failed(INVALID_INPUT_REASON, text)

    trimmed = text.strip()
    for name, layer in _LAYERS:
        try:
            outcome = layer(trimmed)
        except RecursionError:
            # json.loads on absurdly deep nesting
            logger.debug(f"JSON recovery layer '{name}' hit recursion limit")
            outcome = None
        if outcome is not None:
            logger.debug(f"Recovered JSON via {name}")
            return outcome

    logger.debug(f"JSON recovery failed for {len(text)} characters of input")
    return ParseOutcome.failed(EXHAUSTED_REASON, text)


def safe_json_parse(text: Any, fallback: Any) -> Any:
    """Return the recovered value, or ``fallback`` itself when recovery fails."""
    outcome = recover(text)
    return outcome.value if outcome.success else fallback
