"""Robust JSON extraction from LLM responses: brace balancing and entity recovery."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


def extract_json(text: str) -> dict | list | None:
    """Try to extract the first valid JSON object or array from *text*.

    Strategy:
    1. Attempt ``json.loads`` on the full text (fast path).
    2. Slide through the text looking for ``{`` or ``[`` and attempt
       brace-balanced extraction.
    3. Return ``None`` if nothing works.
    """
    if not text or not text.strip():
        return None

    stripped = text.strip()

    # Fast path: whole text is valid JSON
    try:
        return json.loads(stripped)
    except (json.JSONDecodeError, ValueError):
        pass

    # Sliding brace-balance
    for i, ch in enumerate(stripped):
        if ch == "{":
            result = _extract_balanced(stripped, i, "{", "}")
            if result is not None:
                return result
        elif ch == "[":
            result = _extract_balanced(stripped, i, "[", "]")
            if result is not None:
                return result

    return None


def _extract_balanced(
    text: str, start: int, open_ch: str, close_ch: str
) -> dict | list | None:
    """Extract a brace-balanced substring starting at *start* and parse it."""
    depth = 0
    in_string = False
    escape = False

    for i in range(start, len(text)):
        ch = text[i]

        if escape:
            escape = False
            continue

        if ch == "\\":
            if in_string:
                escape = True
            continue

        if ch == '"':
            in_string = not in_string
            continue

        if in_string:
            continue

        if ch == open_ch:
            depth += 1
        elif ch == close_ch:
            depth -= 1
            if depth == 0:
                candidate = text[start : i + 1]
                try:
                    return json.loads(candidate)
                except (json.JSONDecodeError, ValueError):
                    return None

    return None


# ─── Entity response recovery ────────────────────────

ENTITY_ARRAYS = ("contracts", "receivables", "expenses")

LAYER_DIRECT = "direct"
LAYER_REPAIRED = "repaired"
LAYER_INCREMENTAL = "incremental"

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")
_MISSING_COMMA_RE = re.compile(r"([}\]])(\s*)(?=[{\[\"])")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")


class ResponseRecoveryError(ValueError):
    """No entity array could be recovered from a response."""


@dataclass
class RecoveredEntities:
    """Entity arrays recovered from a response plus the layer that produced them."""

    arrays: dict[str, list[dict]] = field(default_factory=dict)
    layer: str = LAYER_DIRECT
    failed_arrays: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(len(items) for items in self.arrays.values())


def repair_json(text: str) -> str:
    """Apply syntactic repairs typical of truncated or sloppy LLM output."""
    repaired = _FENCE_RE.sub("", text.strip())
    repaired = repaired.replace("\x00", "")
    repaired = _CONTROL_CHARS_RE.sub(" ", repaired)
    repaired = _TRAILING_COMMA_RE.sub(r"\1", repaired)
    repaired = _MISSING_COMMA_RE.sub(r"\1,\2", repaired)
    return _close_open_brackets(repaired).strip()


def _close_open_brackets(text: str) -> str:
    """Append the closers a truncated document is missing."""
    stack: list[str] = []
    in_string = False
    escape = False
    for ch in text:
        if escape:
            escape = False
            continue
        if ch == "\\" and in_string:
            escape = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch in "{[":
            stack.append("}" if ch == "{" else "]")
        elif ch in "}]" and stack and stack[-1] == ch:
            stack.pop()

    if not stack and not in_string:
        return text
    closed = text + ('"' if in_string else "")
    closed = closed.rstrip().rstrip(",")
    return _TRAILING_COMMA_RE.sub(r"\1", closed + "".join(reversed(stack)))


def extract_array_with_brackets(text: str, name: str) -> str | None:
    """Return the raw ``[...]`` text of the array stored under key *name*.

    Quote- and escape-aware scan to the matching bracket; ``None`` when the
    key is missing or the array never closes.
    """
    match = re.search(rf'"{re.escape(name)}"\s*:\s*\[', text)
    if not match:
        return None

    start = match.end() - 1
    depth = 0
    in_string = False
    escape = False
    for i in range(start, len(text)):
        ch = text[i]
        if escape:
            escape = False
            continue
        if ch == "\\" and in_string:
            escape = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


def _entity_arrays(parsed) -> dict[str, list[dict]] | None:
    if not isinstance(parsed, dict):
        return None
    if not any(name in parsed for name in ENTITY_ARRAYS) and isinstance(parsed.get("data"), dict):
        parsed = parsed["data"]
    if not any(isinstance(parsed.get(name), list) for name in ENTITY_ARRAYS):
        return None
    return {
        name: [item for item in parsed.get(name) or [] if isinstance(item, dict)]
        for name in ENTITY_ARRAYS
    }


def _loads(text: str):
    return json.loads(text, strict=False)


def _object_span(text: str) -> str:
    stripped = _FENCE_RE.sub("", text.strip())
    start = stripped.find("{")
    end = stripped.rfind("}")
    if start == -1:
        return stripped
    if end < start:
        return stripped[start:]
    return stripped[start : end + 1]


def recover_entity_arrays(text: str) -> RecoveredEntities:
    """Parse an entities response through an ordered recovery cascade.

    1. direct parse of the outermost object;
    2. syntactic repair, then parse;
    3. each entity array extracted and parsed on its own, so one broken
       array does not take the others down.

    The first layer that yields the entity arrays wins. Raises
    :class:`ResponseRecoveryError` when the last layer recovers nothing.
    """
    if not text or not text.strip():
        raise ResponseRecoveryError("Empty response")

    candidate = _object_span(text)

    try:
        arrays = _entity_arrays(_loads(candidate))
    except ValueError:
        arrays = None
    if arrays is not None:
        return RecoveredEntities(arrays=arrays, layer=LAYER_DIRECT)

    try:
        arrays = _entity_arrays(_loads(repair_json(candidate)))
    except ValueError:
        arrays = None
    if arrays is not None:
        logger.warning("Entity response needed syntactic repair")
        return RecoveredEntities(arrays=arrays, layer=LAYER_REPAIRED)

    recovered = RecoveredEntities(layer=LAYER_INCREMENTAL)
    for name in ENTITY_ARRAYS:
        raw_array = extract_array_with_brackets(text, name)
        items = None
        if raw_array is not None:
            for attempt in (raw_array, repair_json(raw_array)):
                try:
                    parsed = _loads(attempt)
                except ValueError:
                    continue
                if isinstance(parsed, list):
                    items = [item for item in parsed if isinstance(item, dict)]
                    break
        if items is None:
            recovered.failed_arrays.append(name)
            recovered.arrays[name] = []
        else:
            recovered.arrays[name] = items

    if recovered.total == 0:
        raise ResponseRecoveryError("No entities could be recovered from the response")

    logger.warning(
        "Entity response recovered incrementally: %d entities, failed arrays=%s",
        recovered.total,
        recovered.failed_arrays,
    )
    return recovered
