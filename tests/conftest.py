"""
Shared pytest fixtures for feedtags tests.

Provides a mock classifier and in-memory stores so no test touches the
network or a real LLM.
"""

import threading
from datetime import datetime, timezone

import pytest

from feedtags.providers.base import ConnectionStatus
from feedtags.record_store import MemoryRecordStore
from feedtags.tag_store import TagStore
from feedtags.types import Item


class MockClassifier:
    """
    Deterministic classifier for testing.

    Returns `response` for every prompt unless a per-title response is
    registered. Records every prompt it was given.
    """

    name = "mock"

    def __init__(self, response: str = '[{"tag": "tech", "reason": "mock"}]'):
        self.response = response
        self.by_title: dict[str, str | Exception] = {}
        self.prompts: list[str] = []
        self._lock = threading.Lock()

    def classify(self, prompt: str) -> str:
        with self._lock:
            self.prompts.append(prompt)
        for title, result in self.by_title.items():
            if f"Title: {title}\n" in prompt:
                if isinstance(result, Exception):
                    raise result
                return result
        return self.response

    def check(self) -> ConnectionStatus:
        return ConnectionStatus(True, "mock ok")


class MockFetcher:
    """Fetcher returning canned entries; unknown ids raise."""

    def __init__(self, entries: dict[str, Item] | None = None):
        self.entries = entries or {}
        self.calls: list[str] = []

    def fetch(self, item_id: str) -> Item:
        self.calls.append(item_id)
        if item_id not in self.entries:
            from feedtags.errors import FetchError
            raise FetchError(f"entry {item_id} not found")
        return self.entries[item_id]


class FakeClock:
    """Settable UTC clock for retention tests."""

    def __init__(self, now: datetime | None = None):
        self.now = now or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def mock_classifier():
    return MockClassifier()


@pytest.fixture
def records():
    return MemoryRecordStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tag_store(records, clock):
    return TagStore(records, clock=clock)


@pytest.fixture(autouse=True)
def isolated_store_env(tmp_path, monkeypatch):
    """Keep every test away from ~/.feedtags and real credentials."""
    monkeypatch.setenv("FEEDTAGS_STORE_PATH", str(tmp_path / "store"))
    for name in (
        "ANTHROPIC_API_KEY", "OPENAI_API_KEY", "FEEDTAGS_OPENAI_API_KEY",
        "OLLAMA_HOST", "FEEDBIN_EMAIL", "FEEDBIN_PASSWORD", "FEEDTAGS_VERBOSE",
    ):
        monkeypatch.delenv(name, raising=False)
