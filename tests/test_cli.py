"""
Tests for the feedtags CLI.

Uses typer's CliRunner against a temporary store; the classifier is
replaced with the mock so nothing reaches a provider.
"""

import json
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from feedtags import cli
from feedtags.cli import app
from feedtags.record_store import RecordStore
from feedtags.tag_store import ENTRY_TAGS

from tests.conftest import MockClassifier

runner = CliRunner()


@pytest.fixture
def store_path(tmp_path):
    path = tmp_path / "store"
    cli._store_override = None
    cli._json_output = False
    return path


@pytest.fixture
def mock_create():
    with patch("feedtags.api.create_classifier", return_value=MockClassifier()) as create:
        yield create


def invoke(store_path, *args):
    return runner.invoke(app, ["--store", str(store_path), *args])


def seed(store_path, entries):
    """Write entry assignments straight into the store's database."""
    store_path.mkdir(parents=True, exist_ok=True)
    with RecordStore(store_path / "feedtags.db") as records:
        records.set(ENTRY_TAGS, {
            entry_id: {"tags": tags, "reasons": {}, "updated_at": updated_at}
            for entry_id, (tags, updated_at) in entries.items()
        })


class TestClassify:
    def test_classify_and_show(self, store_path, mock_create):
        result = invoke(store_path, "classify", "1", "2", "--title", "Rust 2.0")
        assert result.exit_code == 0, result.output
        assert "1: tech" in result.output
        assert "2 tagged, 0 untagged, 0 failed" in result.output

        result = invoke(store_path, "show", "1")
        assert result.exit_code == 0
        assert "1: tech" in result.output
        assert "tech: mock" in result.output

    def test_classify_json(self, store_path, mock_create):
        result = invoke(store_path, "--json", "classify", "7", "--title", "Entry")
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["tagged"] == 1
        assert data["entries"]["7"]["tags"] == ["tech"]

    def test_classify_without_title_fails_entry(self, store_path, mock_create):
        result = invoke(store_path, "classify", "9")
        assert result.exit_code == 0
        assert "9: (untagged)" in result.output
        assert "1 failed" in result.output

    def test_show_untagged(self, store_path):
        result = invoke(store_path, "show", "404")
        assert result.exit_code == 1
        assert "(untagged)" in result.output


class TestTagCommands:
    def test_tags_with_counts(self, store_path):
        seed(store_path, {
            "1": (["tech"], "2026-01-01T00:00:00"),
            "2": (["tech", "science"], "2026-01-01T00:00:00"),
        })
        result = invoke(store_path, "--json", "tags")
        assert json.loads(result.output) == {"science": 1, "tech": 2}

        result = invoke(store_path, "tags", "--entries", "science")
        assert result.output.split() == ["2"]

    def test_untag(self, store_path):
        seed(store_path, {"1": (["tech", "science"], "2026-01-01T00:00:00")})
        result = invoke(store_path, "untag", "1", "tech")
        assert result.exit_code == 0
        assert "1: science" in result.output

        result = invoke(store_path, "untag", "1", "science")
        assert "(untagged)" in result.output

    def test_vocab(self, store_path):
        result = invoke(store_path, "--json", "vocab", "Tech", "science")
        assert json.loads(result.output) == ["tech", "science"]

        result = invoke(store_path, "vocab")
        assert result.output.split() == ["tech", "science"]

        result = invoke(store_path, "vocab", "tech", "bad!")
        assert "Skipped 1" in result.output

        result = invoke(store_path, "vocab", "--clear")
        assert "No predefined tags." in result.output

    def test_feed_tags(self, store_path):
        result = invoke(store_path, "feed-tags", "77", "linux", "dev")
        assert "linux, dev" in result.output
        result = invoke(store_path, "--json", "feed-tags", "77")
        assert json.loads(result.output) == {"77": ["linux", "dev"]}


class TestFilterCommands:
    def test_toggle_and_show(self, store_path):
        result = invoke(store_path, "--json", "filter", "--include", "tech", "--exclude", "politics")
        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == {
            "include_tags": ["tech"], "exclude_tags": ["politics"], "active": 2,
        }

        # Excluding an included tag moves it across
        result = invoke(store_path, "--json", "filter", "--exclude", "tech")
        data = json.loads(result.output)
        assert data["include_tags"] == []
        assert data["exclude_tags"] == ["politics", "tech"]

        result = invoke(store_path, "--json", "filter", "--clear")
        assert json.loads(result.output)["active"] == 0

    def test_visible(self, store_path):
        seed(store_path, {
            "1": (["tech"], "2026-01-01T00:00:00"),
            "2": (["politics"], "2026-01-01T00:00:00"),
        })
        invoke(store_path, "filter", "--include", "tech")
        result = invoke(store_path, "--json", "visible", "3", "2", "1")
        assert json.loads(result.output) == ["1"]

    def test_empty_filter_tag(self, store_path):
        result = invoke(store_path, "filter", "--include", " ")
        assert result.exit_code == 1


class TestPrune:
    def test_prune(self, store_path):
        seed(store_path, {
            "old-read": (["tech"], "2000-01-01T00:00:00"),
            "old-unread": (["tech"], "2000-01-01T00:00:00"),
        })
        result = invoke(store_path, "prune", "old-read", "--days", "30")
        assert result.exit_code == 0
        assert "Removed 1" in result.output

        result = invoke(store_path, "--json", "tags", "--entries", "tech")
        assert json.loads(result.output) == {"tech": ["old-unread"]}


class TestConfigAndCheck:
    def test_config_defaults(self, store_path):
        result = invoke(store_path, "--json", "config")
        data = json.loads(result.output)
        assert data["provider"] == "local"
        assert data["days_to_keep"] == 30
        assert data["anthropic_api_key"] is False

    def test_set_provider_and_model(self, store_path):
        result = invoke(store_path, "--json", "config", "--provider", "openai", "--model", "gpt-4.1")
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["provider"] == "openai"
        assert data["model"] == "gpt-4.1"

    def test_env_key_not_persisted(self, store_path, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-secret")
        result = invoke(store_path, "--json", "config", "--provider", "claude")
        assert json.loads(result.output)["anthropic_api_key"] is True
        assert "sk-secret" not in (store_path / "feedtags.toml").read_text()

    def test_unknown_provider(self, store_path):
        result = invoke(store_path, "config", "--provider", "gemini")
        assert result.exit_code == 1
        assert "Unknown provider" in result.output

    def test_check_ok(self, store_path, mock_create):
        result = invoke(store_path, "check")
        assert result.exit_code == 0
        assert "mock ok" in result.output

    def test_check_missing_key(self, store_path):
        invoke(store_path, "config", "--provider", "anthropic")
        result = invoke(store_path, "check")
        assert result.exit_code == 1
        assert "ANTHROPIC_API_KEY" in result.output


class TestMain:
    def test_unexpected_error_logged(self, tmp_path, monkeypatch, capsys):
        monkeypatch.setenv("FEEDTAGS_STORE_PATH", str(tmp_path))
        with patch("feedtags.cli.app", side_effect=RuntimeError("kaboom")):
            with pytest.raises(SystemExit) as exc_info:
                cli.main()
        assert exc_info.value.code == 1
        assert "Error: kaboom" in capsys.readouterr().err
        assert "kaboom" in (tmp_path / "feedtags-errors.log").read_text()

    def test_keyboard_interrupt(self):
        with patch("feedtags.cli.app", side_effect=KeyboardInterrupt):
            with pytest.raises(SystemExit) as exc_info:
                cli.main()
        assert exc_info.value.code == 130
