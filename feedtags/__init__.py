"""
feedtags: LLM-based topical tagging of feed entries.

Basic usage:
    from feedtags import Tagger, Item

    with Tagger() as tagger:
        tagger.classify(["4021"], known={"4021": Item("4021", "Rust 2.0 released")})
        print(tagger.tag_store.get_assignment("4021"))
"""

__version__ = "0.1.0"

from .api import Tagger
from .filters import ActiveFilters, FilterMode, should_show, toggle_filter
from .parsing import ParseResult, parse_tags
from .prompts import build_prompt
from .scheduler import ClassificationScheduler, ItemState, RunStats, SchedulerStatus
from .tag_store import TagStore
from .types import Item, TagAssignment

__all__ = [
    "__version__",
    "ActiveFilters",
    "ClassificationScheduler",
    "FilterMode",
    "Item",
    "ItemState",
    "ParseResult",
    "RunStats",
    "SchedulerStatus",
    "TagAssignment",
    "TagStore",
    "Tagger",
    "build_prompt",
    "parse_tags",
    "should_show",
    "toggle_filter",
]
