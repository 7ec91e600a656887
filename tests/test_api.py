"""Tests for the Tagger facade."""

import logging
from unittest.mock import patch

import pytest

from feedtags.api import Tagger
from feedtags.config import Provider
from feedtags.fetch import FeedbinFetcher
from feedtags.record_store import MemoryRecordStore
from feedtags.types import Item

from tests.conftest import MockClassifier


@pytest.fixture
def tagger(tmp_path):
    t = Tagger(tmp_path / "store", records=MemoryRecordStore(), classifier=MockClassifier())
    yield t
    t.close()


class TestTagger:
    def test_creates_store_directory_and_config(self, tmp_path):
        with Tagger(tmp_path / "new", records=MemoryRecordStore()) as tagger:
            assert tagger.config.config_path.exists()
            assert tagger.store_path == tmp_path / "new"

    def test_default_records_are_sqlite(self, tmp_path):
        with Tagger(tmp_path / "store") as tagger:
            tagger.tag_store.set_predefined_tags(["tech"])
        assert (tmp_path / "store" / "feedtags.db").exists()
        with Tagger(tmp_path / "store") as tagger:
            assert tagger.tag_store.get_predefined_tags() == ["tech"]

    def test_classify(self, tagger):
        stats = tagger.classify(["1", "2"], {"1": Item("1", "One"), "2": Item("2", "Two")})
        assert stats.tagged == 2
        assert tagger.tag_store.get_assignment("1").tags == ["tech"]

    def test_classify_skips_tagged(self, tagger):
        tagger.tag_store.set_assignment("1", ["science"])
        stats = tagger.classify(["1"], {"1": Item("1", "One")})
        assert stats.total == 0
        assert tagger.tag_store.get_assignment("1").tags == ["science"]

    def test_prune_uses_config_default(self, tagger):
        with patch.object(tagger.tag_store, "prune", return_value=0) as prune:
            tagger.prune(["1"])
        prune.assert_called_once_with(["1"], 30)

    def test_check(self, tagger):
        status = tagger.check()
        assert status.ok
        assert status.message == "mock ok"

    def test_check_reports_configuration_error(self, tmp_path):
        with Tagger(tmp_path / "store", records=MemoryRecordStore()) as tagger:
            tagger.config.provider.provider = Provider.ANTHROPIC
            status = tagger.check()
        assert not status.ok
        assert "ANTHROPIC_API_KEY" in status.message

    def test_classifier_created_lazily(self, tmp_path):
        with patch("feedtags.api.create_classifier", return_value=MockClassifier()) as create:
            with Tagger(tmp_path / "store", records=MemoryRecordStore()) as tagger:
                assert create.call_count == 0
                tagger.get_classifier()
                tagger.get_classifier()
                assert create.call_count == 1

    def test_no_fetcher_without_credentials(self, tagger):
        assert tagger.get_fetcher() is None

    def test_feedbin_fetcher_from_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("FEEDBIN_EMAIL", "me@example.com")
        monkeypatch.setenv("FEEDBIN_PASSWORD", "pw")
        with patch("feedtags.fetch.httpx.Client"):
            with Tagger(tmp_path / "store", records=MemoryRecordStore()) as tagger:
                assert isinstance(tagger.get_fetcher(), FeedbinFetcher)

    def test_close_removes_ops_log_handler(self, tmp_path):
        logger = logging.getLogger("feedtags")
        before = len(logger.handlers)
        tagger = Tagger(tmp_path / "store", records=MemoryRecordStore())
        assert len(logger.handlers) == before + 1
        tagger.close()
        assert len(logger.handlers) == before
        assert (tmp_path / "store" / "feedtags-ops.log").exists()
