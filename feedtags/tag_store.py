"""
Tag store: entry tag assignments, feed context tags, vocabulary and filters.

The store is the source of truth for:
- Entry tags and per-tag reasons (record "entryTags")
- Feed context tags (record "feedTags")
- The user's predefined vocabulary (record "predefinedTags")
- Active include/exclude filters (record "activeFilters")

Each record is a JSON document in a PersistenceStore. Every
read-modify-write runs under one re-entrant lock, so concurrent
classification results for different entries never overwrite each other
and aggregate reads (all_tags, stats) never see a half-written record.
Change listeners on the record store run after that lock is released.
"""

import logging
import threading
from collections import Counter
from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Optional

from .config import DEFAULT_DAYS_TO_KEEP
from .filters import ActiveFilters, FilterMode, toggle_filter
from .record_store import PersistenceStore
from .types import TagAssignment, normalize_tag, normalize_tags, utc_now

logger = logging.getLogger(__name__)

ENTRY_TAGS = "entryTags"
FEED_TAGS = "feedTags"
PREDEFINED_TAGS = "predefinedTags"
ACTIVE_FILTERS = "activeFilters"


class TagStore:
    """
    Tag assignments and related state on top of a PersistenceStore.

    Example:
        store = TagStore(MemoryRecordStore())
        store.set_assignment("42", ["tech"], {"tech": "About compilers"})
        store.is_tagged("42")  # True
    """

    def __init__(
        self,
        records: PersistenceStore,
        *,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Args:
            records: Backing record store
            clock: Returns the current UTC time (injectable for tests)
        """
        self._records = records
        self._lock = threading.RLock()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def records(self) -> PersistenceStore:
        return self._records

    def _now(self) -> str:
        return self._clock().strftime("%Y-%m-%dT%H:%M:%S")

    @contextmanager
    def _writing(self) -> Iterator[None]:
        """Hold the lock for a read-modify-write; notify listeners after."""
        with self._records.hold_notifications():
            with self._lock:
                yield

    # -------------------------------------------------------------------------
    # Entry assignments
    # -------------------------------------------------------------------------

    def _load_entries(self) -> dict[str, dict]:
        return self._records.get(ENTRY_TAGS, {}) or {}

    def get_assignments(self) -> dict[str, TagAssignment]:
        """All assignments keyed by entry id."""
        with self._lock:
            raw = self._load_entries()
        return {
            entry_id: TagAssignment.from_dict(data)
            for entry_id, data in raw.items()
        }

    def get_assignment(self, entry_id: str) -> Optional[TagAssignment]:
        """The assignment for one entry, or None if untagged."""
        with self._lock:
            data = self._load_entries().get(str(entry_id))
        return TagAssignment.from_dict(data) if data else None

    def is_tagged(self, entry_id: str) -> bool:
        with self._lock:
            return str(entry_id) in self._load_entries()

    def tagged_ids(self) -> set[str]:
        with self._lock:
            return set(self._load_entries())

    def set_assignment(
        self,
        entry_id: str,
        tags: Iterable[str],
        reasons: Mapping[str, str] | None = None,
    ) -> TagAssignment:
        """
        Write (or overwrite) the tags for one entry.

        Tags are normalized and invalid ones dropped; reasons are kept
        only for tags that survive.

        Raises:
            ValueError: If no valid tag remains
        """
        clean = normalize_tags(tags)
        if not clean:
            raise ValueError(f"No valid tags for entry {entry_id}")
        reasons = {normalize_tag(k): v for k, v in (reasons or {}).items()}
        assignment = TagAssignment(
            tags=clean,
            reasons={t: str(reasons[t]) for t in clean if reasons.get(t)},
            updated_at=self._now(),
        )
        with self._writing():
            entries = self._load_entries()
            entries[str(entry_id)] = assignment.to_dict()
            self._records.set(ENTRY_TAGS, entries)
        return assignment

    def set_assignments(self, tags_by_entry: Mapping[str, Iterable[str]]) -> int:
        """
        Write tags for many entries in one record update (no reasons).

        Entries whose tags are all invalid are skipped. Returns the
        number of entries written.
        """
        now = self._now()
        written = 0
        with self._writing():
            entries = self._load_entries()
            for entry_id, tags in tags_by_entry.items():
                clean = normalize_tags(tags)
                if not clean:
                    continue
                entries[str(entry_id)] = TagAssignment(
                    tags=clean, updated_at=now,
                ).to_dict()
                written += 1
            if written:
                self._records.set(ENTRY_TAGS, entries)
        return written

    def remove_tag(self, entry_id: str, tag: str) -> Optional[TagAssignment]:
        """
        Remove one tag from an entry.

        Rewrites the assignment without the tag (keeping the other
        reasons), or deletes it when no tags remain.

        Returns:
            The updated assignment, or None if the entry is now untagged
        """
        entry_id = str(entry_id)
        tag = normalize_tag(tag)
        with self._writing():
            entries = self._load_entries()
            data = entries.get(entry_id)
            if not data:
                return None
            current = TagAssignment.from_dict(data)
            remaining = [t for t in current.tags if t != tag]
            if not remaining:
                del entries[entry_id]
                self._records.set(ENTRY_TAGS, entries)
                return None
            updated = TagAssignment(
                tags=remaining,
                reasons={t: r for t, r in current.reasons.items() if t in remaining},
                updated_at=self._now(),
            )
            entries[entry_id] = updated.to_dict()
            self._records.set(ENTRY_TAGS, entries)
        return updated

    def delete_assignment(self, entry_id: str) -> bool:
        """Delete an entry's assignment. Returns True if it existed."""
        with self._writing():
            entries = self._load_entries()
            if str(entry_id) not in entries:
                return False
            del entries[str(entry_id)]
            self._records.set(ENTRY_TAGS, entries)
        return True

    def entries_by_tag(self, tag: str) -> list[str]:
        """Ids of entries carrying a tag."""
        tag = normalize_tag(tag)
        return [
            entry_id for entry_id, a in self.get_assignments().items()
            if tag in a.tags
        ]

    # -------------------------------------------------------------------------
    # Retention
    # -------------------------------------------------------------------------

    def prune(
        self,
        read_ids: Iterable[str],
        days_to_keep: int = DEFAULT_DAYS_TO_KEEP,
    ) -> int:
        """
        Remove assignments of read entries older than days_to_keep.

        Unread entries are kept regardless of age so they are never
        classified twice before the user sees them.

        Returns:
            Number of assignments removed
        """
        read = {str(i) for i in read_ids}
        if not read:
            return 0
        cutoff = self._clock() - timedelta(days=days_to_keep)

        with self._writing():
            entries = self._load_entries()
            stale = [
                entry_id for entry_id, data in entries.items()
                if entry_id in read
                and TagAssignment.from_dict(data).updated_datetime < cutoff
            ]
            for entry_id in stale:
                del entries[entry_id]
            if stale:
                self._records.set(ENTRY_TAGS, entries)

        if stale:
            logger.info(
                "Pruned %d tag assignments older than %d days",
                len(stale), days_to_keep,
            )
        return len(stale)

    # -------------------------------------------------------------------------
    # Vocabulary and feed context
    # -------------------------------------------------------------------------

    def get_predefined_tags(self) -> list[str]:
        """The user's predefined vocabulary, in declared order."""
        with self._lock:
            return normalize_tags(self._records.get(PREDEFINED_TAGS, []) or [])

    def set_predefined_tags(self, tags: Iterable[str]) -> list[str]:
        """Replace the predefined vocabulary. Returns the stored tags."""
        clean = normalize_tags(tags)
        with self._writing():
            self._records.set(PREDEFINED_TAGS, clean)
        return clean

    def _load_feeds(self) -> dict[str, dict]:
        return self._records.get(FEED_TAGS, {}) or {}

    def get_feed_tags(self, feed_id: str | None) -> list[str]:
        """Context tags for a feed ([] if none or feed_id is None)."""
        if feed_id is None:
            return []
        with self._lock:
            data = self._load_feeds().get(str(feed_id))
        return normalize_tags(data.get("tags", [])) if data else []

    def set_feed_tags(self, feed_id: str, tags: Iterable[str]) -> list[str]:
        """Replace a feed's context tags. An empty list removes the feed."""
        clean = normalize_tags(tags)
        with self._writing():
            feeds = self._load_feeds()
            if clean:
                feeds[str(feed_id)] = {"tags": clean, "updated_at": self._now()}
            else:
                feeds.pop(str(feed_id), None)
            self._records.set(FEED_TAGS, feeds)
        return clean

    def feeds_by_tag(self, tag: str) -> list[str]:
        """Ids of feeds carrying a context tag."""
        tag = normalize_tag(tag)
        with self._lock:
            feeds = self._load_feeds()
        return [fid for fid, data in feeds.items() if tag in data.get("tags", [])]

    def all_tags(self) -> list[str]:
        """Sorted union of predefined, feed and entry tags."""
        with self._lock:
            tags = set(self.get_predefined_tags())
            for data in self._load_feeds().values():
                tags.update(normalize_tags(data.get("tags", [])))
            for data in self._load_entries().values():
                tags.update(normalize_tags(data.get("tags", [])))
        return sorted(tags)

    # -------------------------------------------------------------------------
    # Filters
    # -------------------------------------------------------------------------

    def get_filters(self) -> ActiveFilters:
        with self._lock:
            return ActiveFilters.from_dict(self._records.get(ACTIVE_FILTERS))

    def set_filters(self, filters: ActiveFilters) -> ActiveFilters:
        with self._writing():
            self._records.set(ACTIVE_FILTERS, filters.to_dict())
        return filters

    def toggle_filter(self, tag: str, mode: FilterMode | str) -> ActiveFilters:
        """Toggle a tag in the include or exclude filter and save."""
        with self._writing():
            updated = toggle_filter(self.get_filters(), tag, mode)
            return self.set_filters(updated)

    def clear_filters(self) -> ActiveFilters:
        return self.set_filters(ActiveFilters())

    # -------------------------------------------------------------------------
    # Statistics
    # -------------------------------------------------------------------------

    def stats(self) -> dict:
        """Counts for observability: entries, tag usage, vocabulary, feeds."""
        with self._lock:
            assignments = self.get_assignments()
            usage = Counter(t for a in assignments.values() for t in a.tags)
            return {
                "tagged_entries": len(assignments),
                "tag_counts": dict(usage.most_common()),
                "predefined_tags": len(self.get_predefined_tags()),
                "tagged_feeds": len(self._load_feeds()),
                "checked_at": utc_now(),
            }
