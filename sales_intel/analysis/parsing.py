"""Two-tier parsing of language-model output.

Tier 1 locates and decodes a JSON object (after stripping code fences).
Tier 2 is a regex section extractor over the raw text, used by callers
when tier 1 fails. Callers report which tier produced a value through the
Ok / Degraded outcome types instead of raising.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Generic, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Model output parsed cleanly."""
    value: T

    @property
    def degraded(self) -> bool:
        return False


@dataclass(frozen=True)
class Degraded(Generic[T]):
    """Best-effort value; reason says what went wrong."""
    value: T
    reason: str

    @property
    def degraded(self) -> bool:
        return True


ParseOutcome = Union[Ok[T], Degraded[T]]

_FENCE_PATTERNS = [
    re.compile(r"```json\s*(\{.*?\})\s*```", re.S | re.I),
    re.compile(r"```\s*(\{.*?\})\s*```", re.S),
]


def strip_code_fences(text: str) -> str:
    cleaned = text.strip()
    cleaned = re.sub(r"^```(?:json)?\s*", "", cleaned, flags=re.I)
    cleaned = re.sub(r"\s*```\s*$", "", cleaned)
    return cleaned.strip()


def _balanced_object(text: str, start: int) -> str | None:
    """Return the brace-balanced object starting at text[start], respecting strings."""
    depth = 0
    in_string = False
    escape = False
    for i in range(start, len(text)):
        c = text[i]
        if escape:
            escape = False
            continue
        if c == "\\":
            escape = True
            continue
        if c == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if c == "{":
            depth += 1
        elif c == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def extract_json(text: str) -> str | None:
    """Find the JSON object in a model response, or None.

    Tries in order: the whole (fence-stripped) text, fenced blocks, the span
    from the first "{" to the last "}", then a brace-balanced object.
    """
    if not text:
        return None

    cleaned = strip_code_fences(text)
    candidates = [cleaned]
    for pattern in _FENCE_PATTERNS:
        match = pattern.search(text)
        if match:
            candidates.append(match.group(1))

    first = cleaned.find("{")
    last = cleaned.rfind("}")
    if first != -1 and last > first:
        candidates.append(cleaned[first:last + 1])
        balanced = _balanced_object(cleaned, first)
        if balanced:
            candidates.append(balanced)

    for candidate in candidates:
        try:
            if isinstance(json.loads(candidate), dict):
                return candidate
        except json.JSONDecodeError:
            continue
    return None


def parse_model_json(text: str) -> dict | None:
    """Decode the JSON object in a model response, or None if there isn't one."""
    candidate = extract_json(text)
    if candidate is None:
        logger.debug("No JSON object found. Response preview: %s", (text or "")[:200])
        return None
    return json.loads(candidate)


# ---------------------------------------------------------------------------
# Fallback (tier 2) helpers
# ---------------------------------------------------------------------------

_BULLET_RE = re.compile(r"^\s*(?:[-*•]+|\d+[.)])\s*")
_CITATION_RE = re.compile(r"\[(\d{1,3})\]")


def find_section(text: str, label: str, stop_labels: list[str] | None = None) -> str:
    """Return the text following "label:" up to the next known label or blank line.

    label is a regex fragment such as r"key insights?".
    """
    match = re.search(rf"(?:^|\n)\W*{label}\W*:?\s*(.*)", text, re.I | re.S)
    if not match:
        return ""
    body = match.group(1)
    stops = stop_labels or []
    end = len(body)
    for stop in stops:
        stop_match = re.search(rf"\n\W*{stop}\W*:", body, re.I)
        if stop_match:
            end = min(end, stop_match.start())
    blank = re.search(r"\n\s*\n", body)
    if blank:
        end = min(end, blank.start())
    return body[:end].strip()


def find_word(text: str, label: str) -> str:
    """Single word following "label:" (e.g. data quality: good)."""
    match = re.search(rf"{label}\W*:?\s*(\w+)", text, re.I)
    return match.group(1).lower() if match else ""


def split_items(block: str, limit: int = 5, separators: str = r"\n|;") -> list[str]:
    """Split a section into list items, strip bullets/numbering, drop empties."""
    items = []
    for raw in re.split(separators, block):
        item = _BULLET_RE.sub("", raw).strip().strip('"').strip()
        if len(item) > 2:
            items.append(item)
        if len(items) >= limit:
            break
    return items


def extract_citations(text: str) -> list[int]:
    """Citation ids referenced as [n], in first-seen order."""
    seen = []
    for match in _CITATION_RE.finditer(text or ""):
        n = int(match.group(1))
        if n not in seen:
            seen.append(n)
    return seen
