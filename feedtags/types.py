"""
Data types for entry classification.
"""

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


# Tags are short lowercase labels: letters, digits, spaces, hyphens
_TAG_RE = re.compile(r'^[a-z0-9 -]+$')

# Exclusive upper bound on tag length
MAX_TAG_LENGTH = 30


def utc_now() -> str:
    """Current UTC timestamp in canonical format: YYYY-MM-DDTHH:MM:SS.

    All stored timestamps are UTC without timezone suffix.
    """
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")


def parse_utc_timestamp(ts: str) -> datetime:
    """Parse a stored timestamp string to a timezone-aware UTC datetime.

    Accepts the canonical format as well as 'Z' / '+00:00' suffixes.
    """
    ts = ts.replace("Z", "+00:00")
    dt = datetime.fromisoformat(ts)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def normalize_tag(tag: Any) -> str:
    """Lowercase and trim a candidate tag. Non-strings become ''."""
    if not isinstance(tag, str):
        return ""
    return tag.strip().lower()


def is_valid_tag(tag: str) -> bool:
    """Check a normalized tag: non-empty, under 30 chars, [a-z0-9 -] only."""
    return 0 < len(tag) < MAX_TAG_LENGTH and bool(_TAG_RE.match(tag))


def normalize_tags(tags: Iterable[Any]) -> list[str]:
    """Normalize, validate and deduplicate tags, keeping first-seen order."""
    seen: dict[str, None] = {}
    for raw in tags:
        tag = normalize_tag(raw)
        if is_valid_tag(tag):
            seen.setdefault(tag, None)
    return list(seen)


@dataclass(frozen=True)
class Item:
    """
    A snapshot of one entry (article/post) to classify.

    Attributes:
        id: Stable entry identifier
        title: Entry title
        summary: Short summary (often the only text known without a fetch)
        content: Full body, usually HTML, when fetched
        feed_title: Title of the feed the entry belongs to
        author: Author name if known
        feed_id: Feed identifier, used to look up feed context tags
    """
    id: str
    title: str = ""
    summary: str = ""
    content: Optional[str] = None
    feed_title: str = ""
    author: Optional[str] = None
    feed_id: Optional[str] = None


@dataclass
class TagAssignment:
    """The stored classification result for one entry."""
    tags: list[str]
    reasons: dict[str, str] = field(default_factory=dict)
    updated_at: str = field(default_factory=utc_now)

    @property
    def updated_datetime(self) -> datetime:
        return parse_utc_timestamp(self.updated_at)

    def to_dict(self) -> dict:
        return {
            "tags": list(self.tags),
            "reasons": dict(self.reasons),
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TagAssignment":
        tags = normalize_tags(data.get("tags") or [])
        reasons = data.get("reasons") or {}
        return cls(
            tags=tags,
            reasons={t: str(reasons[t]) for t in tags if t in reasons},
            updated_at=data.get("updated_at") or utc_now(),
        )
