"""Tests for the filter engine."""

import pytest

from feedtags.filters import (
    ActiveFilters,
    FilterMode,
    active_filter_count,
    should_show,
    toggle_filter,
    visible_ids,
)
from feedtags.types import TagAssignment


class TestShouldShow:
    def test_no_filters_shows_everything(self):
        filters = ActiveFilters()
        assert should_show({"tech"}, filters)
        assert should_show(set(), filters)
        assert should_show(None, filters)

    def test_include_match(self):
        filters = ActiveFilters(include_tags={"tech"})
        assert should_show({"tech", "politics"}, filters)
        assert not should_show({"science"}, filters)

    def test_exclude_dominates_include(self):
        filters = ActiveFilters(include_tags={"tech"}, exclude_tags={"politics"})
        assert not should_show({"tech", "politics"}, filters)

    def test_exclude_only(self):
        filters = ActiveFilters(exclude_tags={"sports"})
        assert should_show({"tech"}, filters)
        assert not should_show({"sports"}, filters)

    def test_untagged_hidden_by_include(self):
        assert not should_show(None, ActiveFilters(include_tags={"tech"}))
        assert not should_show(set(), ActiveFilters(include_tags={"tech"}))

    def test_untagged_shown_with_exclude_only(self):
        assert should_show(None, ActiveFilters(exclude_tags={"tech"}))


class TestActiveFilters:
    def test_overlap_rejected(self):
        with pytest.raises(ValueError):
            ActiveFilters(include_tags={"tech"}, exclude_tags={"tech"})

    def test_frozen(self):
        filters = ActiveFilters()
        with pytest.raises(AttributeError):
            filters.include_tags = frozenset({"x"})

    def test_from_dict_resolves_overlap_to_exclude(self):
        filters = ActiveFilters.from_dict({"include_tags": ["Tech", "science"], "exclude_tags": ["tech"]})
        assert filters.include_tags == {"science"}
        assert filters.exclude_tags == {"tech"}

    def test_from_dict_empty(self):
        assert ActiveFilters.from_dict(None).empty
        assert ActiveFilters.from_dict({}).empty

    def test_dict_round_trip(self):
        filters = ActiveFilters(include_tags={"b", "a"}, exclude_tags={"c"})
        assert filters.to_dict() == {"include_tags": ["a", "b"], "exclude_tags": ["c"]}
        assert ActiveFilters.from_dict(filters.to_dict()) == filters


class TestToggle:
    def test_include_evicts_from_exclude(self):
        filters = ActiveFilters(exclude_tags={"science"})
        toggled = toggle_filter(filters, "science", FilterMode.INCLUDE)
        assert toggled.include_tags == {"science"}
        assert "science" not in toggled.exclude_tags

    def test_exclude_evicts_from_include(self):
        filters = ActiveFilters(include_tags={"tech"})
        toggled = toggle_filter(filters, "tech", "exclude")
        assert toggled.exclude_tags == {"tech"}
        assert toggled.include_tags == frozenset()

    def test_toggle_twice_removes(self):
        once = toggle_filter(ActiveFilters(), "tech", FilterMode.INCLUDE)
        twice = toggle_filter(once, "tech", FilterMode.INCLUDE)
        assert twice.empty

    def test_does_not_mutate_input(self):
        filters = ActiveFilters(include_tags={"tech"})
        toggle_filter(filters, "science", FilterMode.INCLUDE)
        assert filters.include_tags == {"tech"}

    def test_normalizes_tag(self):
        toggled = toggle_filter(ActiveFilters(), "  Tech ", FilterMode.INCLUDE)
        assert toggled.include_tags == {"tech"}

    def test_empty_tag_rejected(self):
        with pytest.raises(ValueError):
            toggle_filter(ActiveFilters(), "  ", FilterMode.INCLUDE)

    def test_unknown_mode_rejected(self):
        with pytest.raises(ValueError):
            toggle_filter(ActiveFilters(), "tech", "maybe")


class TestVisibleIds:
    def test_order_preserved(self):
        assignments = {
            "1": TagAssignment(tags=["tech"]),
            "2": TagAssignment(tags=["politics"]),
            "4": TagAssignment(tags=["tech", "science"]),
        }
        filters = ActiveFilters(include_tags={"tech"})
        assert visible_ids(["4", "3", "2", "1"], assignments, filters) == ["4", "1"]

    def test_count(self):
        filters = ActiveFilters(include_tags={"a", "b"}, exclude_tags={"c"})
        assert active_filter_count(filters) == 3
        assert active_filter_count(ActiveFilters()) == 0
