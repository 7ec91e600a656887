"""
Tag filters: which entries are visible under the active include/exclude tags.

Exclusion wins over inclusion. A tag is never in both sets at once;
toggling it into one side removes it from the other.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum

from .types import TagAssignment, normalize_tag


class FilterMode(str, Enum):
    INCLUDE = "include"
    EXCLUDE = "exclude"


@dataclass(frozen=True)
class ActiveFilters:
    """The active include and exclude tag sets."""
    include_tags: frozenset[str] = field(default_factory=frozenset)
    exclude_tags: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self):
        # Accept any iterable; store frozensets
        object.__setattr__(self, "include_tags", frozenset(self.include_tags))
        object.__setattr__(self, "exclude_tags", frozenset(self.exclude_tags))
        overlap = self.include_tags & self.exclude_tags
        if overlap:
            raise ValueError(
                f"Tags cannot be both included and excluded: {sorted(overlap)}"
            )

    @property
    def empty(self) -> bool:
        return not self.include_tags and not self.exclude_tags

    def to_dict(self) -> dict:
        return {
            "include_tags": sorted(self.include_tags),
            "exclude_tags": sorted(self.exclude_tags),
        }

    @classmethod
    def from_dict(cls, data: Mapping | None) -> "ActiveFilters":
        """Build from a stored record. Overlapping tags stay excluded."""
        if not data:
            return cls()
        exclude = {normalize_tag(t) for t in data.get("exclude_tags") or []} - {""}
        include = {normalize_tag(t) for t in data.get("include_tags") or []} - {""}
        return cls(include_tags=include - exclude, exclude_tags=exclude)


def should_show(tags: Iterable[str] | None, filters: ActiveFilters) -> bool:
    """
    Decide whether an entry with these tags is visible.

    - No active filters: always visible.
    - Untagged entry: visible only when no include filter is set.
    - Any excluded tag hides the entry, even if another tag is included.
    - Otherwise, with include filters set, at least one must match.
    """
    if filters.empty:
        return True

    entry_tags = set(tags or ())
    if not entry_tags:
        return not filters.include_tags

    if entry_tags & filters.exclude_tags:
        return False
    if filters.include_tags:
        return bool(entry_tags & filters.include_tags)
    return True


def toggle_filter(
    filters: ActiveFilters, tag: str, mode: FilterMode | str,
) -> ActiveFilters:
    """
    Toggle a tag in the include or exclude set.

    Adding the tag to one side removes it from the other; toggling a
    tag already on that side removes it.
    """
    mode = FilterMode(mode)
    tag = normalize_tag(tag)
    if not tag:
        raise ValueError("Filter tag cannot be empty")

    include = set(filters.include_tags)
    exclude = set(filters.exclude_tags)
    target, other = (include, exclude) if mode is FilterMode.INCLUDE else (exclude, include)

    if tag in target:
        target.discard(tag)
    else:
        target.add(tag)
        other.discard(tag)
    return ActiveFilters(include_tags=include, exclude_tags=exclude)


def active_filter_count(filters: ActiveFilters) -> int:
    """Number of active filter tags (shown as a badge by front ends)."""
    return len(filters.include_tags) + len(filters.exclude_tags)


def visible_ids(
    ids: Iterable[str],
    assignments: Mapping[str, TagAssignment],
    filters: ActiveFilters,
) -> list[str]:
    """Return the ids, in order, whose entries pass the filters."""
    result = []
    for item_id in ids:
        assignment = assignments.get(item_id)
        if should_show(assignment.tags if assignment else None, filters):
            result.append(item_id)
    return result
