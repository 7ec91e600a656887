"""
Turn raw provider text into tags and reasons.

Models are inconsistent: some return the JSON we asked for, some wrap it
in prose or code fences, some answer "Tags: a, b" in plain text. The
structured path handles the first two and keeps per-tag reasons; the
line-based fallback handles the rest with one shared reason.

parse_tags() never raises. Unusable text yields an empty result.
"""

import json
import logging
import re
from dataclasses import dataclass, field

from .types import is_valid_tag, normalize_tag

logger = logging.getLogger(__name__)

# Cap on tags taken from the line-based fallback
MAX_FALLBACK_TAGS = 5

_TAGS_LINE_RE = re.compile(r"Tags:\s*([^\n]+)", re.IGNORECASE)
_REASON_LINE_RE = re.compile(r"Reason:\s*([^\n]+)", re.IGNORECASE)
_LABEL_RE = re.compile(r"^(tags:\s*|suggested tags:\s*|categories:\s*)", re.IGNORECASE)
_SPLIT_RE = re.compile(r"[,;]")

_NO_TAGS = frozenset({"none", "no tags"})

_decoder = json.JSONDecoder()


@dataclass
class ParseResult:
    """Normalized tags (ordered, unique) with reasons keyed by tag."""
    tags: list[str] = field(default_factory=list)
    reasons: dict[str, str] = field(default_factory=dict)
    structured: bool = False


def _find_json_array(text: str) -> list | None:
    """Return the first JSON array in text that can hold tag objects.

    Arrays with elements but no objects (footnote markers like "[1]")
    are skipped.
    """
    start = text.find("[")
    while start != -1:
        try:
            value, _ = _decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            value = None
        if isinstance(value, list) and (
            not value or any(isinstance(v, dict) for v in value)
        ):
            return value
        start = text.find("[", start + 1)
    return None


def _parse_structured(text: str) -> ParseResult | None:
    """Structured path: JSON array of {"tag", "reason"} objects."""
    array = _find_json_array(text)
    if array is None:
        return None

    result = ParseResult(structured=True)
    for element in array:
        if not isinstance(element, dict):
            continue
        tag = normalize_tag(element.get("tag"))
        if not is_valid_tag(tag):
            continue
        if tag not in result.reasons:
            result.tags.append(tag)
        reason = element.get("reason")
        result.reasons[tag] = str(reason).strip() if reason is not None else ""
    return result


def _split_tags(tag_list: str) -> list[str]:
    """Split a comma/semicolon list into valid unique tags, capped."""
    tags: dict[str, None] = {}
    for candidate in _SPLIT_RE.split(tag_list):
        tag = normalize_tag(candidate)
        if is_valid_tag(tag):
            tags.setdefault(tag, None)
    return list(tags)[:MAX_FALLBACK_TAGS]


def _parse_lines(text: str) -> ParseResult:
    """Fallback path: 'Tags: ...' / 'Reason: ...' lines, else the first line."""
    tags_match = _TAGS_LINE_RE.search(text)
    if tags_match:
        tag_list = tags_match.group(1).strip()
        tags = [] if tag_list.lower() in _NO_TAGS else _split_tags(tag_list)
    else:
        first_line = text.split("\n", 1)[0]
        tags = _split_tags(_LABEL_RE.sub("", first_line))

    reason_match = _REASON_LINE_RE.search(text)
    reason = reason_match.group(1).strip() if reason_match else ""

    # One reason line covers every tag
    reasons = {tag: reason for tag in tags} if reason else {}
    return ParseResult(tags=tags, reasons=reasons, structured=False)


def parse_tags(raw_text: str | None) -> ParseResult:
    """
    Parse a provider response into a ParseResult.

    Tries the structured JSON path first; falls back to line parsing
    when no JSON array is present. Never raises.
    """
    if not raw_text or not isinstance(raw_text, str):
        return ParseResult()
    text = raw_text.strip()

    try:
        structured = _parse_structured(text)
    except Exception as e:
        logger.debug("Structured parse failed, using line parser: %s", e)
        structured = None
    if structured is not None:
        return structured

    try:
        return _parse_lines(text)
    except Exception as e:
        logger.warning("Could not parse provider response: %s", e)
        return ParseResult()
