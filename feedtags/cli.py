"""
CLI interface for feedtags.

Usage:
    feedtags classify 4021 4022 --title "Rust 2.0 released"
    feedtags show 4021
    feedtags filter --include tech
    feedtags visible 4021 4022 4023
"""

import json
import os
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from .api import Tagger
from .filters import FilterMode, active_filter_count, visible_ids
from .logging_config import configure_quiet_mode, enable_debug_mode
from .types import Item


# Configure quiet mode by default (suppress verbose library output)
# Set FEEDTAGS_VERBOSE=1 to enable debug mode via environment
if os.environ.get("FEEDTAGS_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_store_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _get_json_output() -> bool:
    return _json_output


def _store_callback(value: Optional[Path]):
    global _store_override
    if value is not None:
        _store_override = value


def _get_store_override() -> Optional[Path]:
    return _store_override


app = typer.Typer(
    name="feedtags",
    help="Classify feed entries into topical tags with an LLM.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar="FEEDTAGS_STORE_PATH",
        help="Path to the store directory (default: ~/.feedtags/)",
        callback=_store_callback,
        is_eager=True,
    )] = None,
):
    """Classify feed entries into topical tags with an LLM."""


def _get_tagger() -> Tagger:
    """Open the store, handling errors gracefully."""
    import atexit

    try:
        tagger = Tagger(_get_store_override())
    except (ValueError, OSError) as e:
        typer.echo(f"Error opening store: {e}", err=True)
        raise typer.Exit(1)
    atexit.register(tagger.close)
    return tagger


def _echo_json(data) -> None:
    typer.echo(json.dumps(data, indent=2))


def _format_assignment(entry_id: str, assignment) -> str:
    if assignment is None:
        return f"{entry_id}: (untagged)"
    lines = [f"{entry_id}: {', '.join(assignment.tags)}"]
    for tag in assignment.tags:
        reason = assignment.reasons.get(tag)
        if reason:
            lines.append(f"  {tag}: {reason}")
    return "\n".join(lines)


def _format_filters(filters) -> str:
    include = ", ".join(sorted(filters.include_tags)) or "-"
    exclude = ", ".join(sorted(filters.exclude_tags)) or "-"
    return f"include: {include}\nexclude: {exclude}\nactive: {active_filter_count(filters)}"


# -----------------------------------------------------------------------------
# Classification
# -----------------------------------------------------------------------------

@app.command()
def classify(
    ids: Annotated[list[str], typer.Argument(help="Entry ids to classify")],
    title: Annotated[Optional[str], typer.Option(
        "--title", "-t",
        help="Entry title (used when the full entry can't be fetched)",
    )] = None,
    summary: Annotated[Optional[str], typer.Option(
        "--summary",
        help="Entry summary (used when the full entry can't be fetched)",
    )] = None,
    feed: Annotated[Optional[str], typer.Option(
        "--feed", "-f",
        help="Feed title shown to the model",
    )] = None,
):
    """
    Classify entries now. Already-tagged entries are skipped.

    \b
    Examples:
        feedtags classify 4021
        feedtags classify 4021 --title "Rust 2.0" --feed "LWN"
    """
    tagger = _get_tagger()
    known = {
        entry_id: Item(
            id=entry_id,
            title=title or "",
            summary=summary or "",
            feed_title=feed or "",
        )
        for entry_id in ids
    } if (title or summary or feed) else None

    stats = tagger.classify(ids, known)

    if _get_json_output():
        _echo_json({
            "batches": stats.batches,
            "tagged": stats.tagged,
            "untagged": stats.untagged,
            "failed": stats.failed,
            "entries": {
                entry_id: (a.to_dict() if (a := tagger.tag_store.get_assignment(entry_id)) else None)
                for entry_id in ids
            },
        })
        return

    for entry_id in ids:
        typer.echo(_format_assignment(entry_id, tagger.tag_store.get_assignment(entry_id)))
    typer.echo(
        f"{stats.tagged} tagged, {stats.untagged} untagged, {stats.failed} failed",
        err=True,
    )


@app.command()
def check():
    """Test the connection to the configured provider."""
    tagger = _get_tagger()
    status = tagger.check()
    if _get_json_output():
        _echo_json({"ok": status.ok, "message": status.message})
    else:
        typer.echo(status.message)
    if not status.ok:
        raise typer.Exit(1)


# -----------------------------------------------------------------------------
# Tags
# -----------------------------------------------------------------------------

@app.command()
def show(
    entry_id: Annotated[str, typer.Argument(help="Entry id")],
):
    """Show an entry's tags and the reason for each."""
    assignment = _get_tagger().tag_store.get_assignment(entry_id)
    if _get_json_output():
        _echo_json({entry_id: assignment.to_dict() if assignment else None})
        return
    typer.echo(_format_assignment(entry_id, assignment))
    if assignment is None:
        raise typer.Exit(1)


@app.command()
def tags(
    entries: Annotated[Optional[str], typer.Option(
        "--entries", "-e",
        help="List entries carrying this tag instead",
    )] = None,
):
    """List all known tags with usage counts."""
    store = _get_tagger().tag_store

    if entries:
        entry_ids = store.entries_by_tag(entries)
        if _get_json_output():
            _echo_json({entries: entry_ids})
        else:
            for entry_id in entry_ids:
                typer.echo(entry_id)
        return

    counts = store.stats()["tag_counts"]
    all_tags = store.all_tags()
    if _get_json_output():
        _echo_json({tag: counts.get(tag, 0) for tag in all_tags})
        return
    if not all_tags:
        typer.echo("No tags yet.")
        return
    width = max(len(t) for t in all_tags)
    for tag in all_tags:
        typer.echo(f"{tag:<{width}}  {counts.get(tag, 0)}")


@app.command()
def untag(
    entry_id: Annotated[str, typer.Argument(help="Entry id")],
    tag: Annotated[str, typer.Argument(help="Tag to remove")],
):
    """Remove one tag from an entry."""
    assignment = _get_tagger().tag_store.remove_tag(entry_id, tag)
    if _get_json_output():
        _echo_json({entry_id: assignment.to_dict() if assignment else None})
    else:
        typer.echo(_format_assignment(entry_id, assignment))


@app.command()
def vocab(
    new_tags: Annotated[Optional[list[str]], typer.Argument(
        help="Replace the predefined vocabulary with these tags",
    )] = None,
    clear: Annotated[bool, typer.Option(
        "--clear",
        help="Remove all predefined tags",
    )] = False,
):
    """
    Show or set the predefined tag vocabulary.

    When the vocabulary (plus feed and entry tags) is non-empty, the model
    may only choose from it.
    """
    store = _get_tagger().tag_store
    if clear:
        current = store.set_predefined_tags([])
    elif new_tags:
        current = store.set_predefined_tags(new_tags)
        dropped = len(new_tags) - len(current)
        if dropped:
            typer.echo(f"Skipped {dropped} invalid or duplicate tag(s)", err=True)
    else:
        current = store.get_predefined_tags()

    if _get_json_output():
        _echo_json(current)
    else:
        typer.echo("\n".join(current) if current else "No predefined tags.")


@app.command("feed-tags")
def feed_tags(
    feed_id: Annotated[str, typer.Argument(help="Feed id")],
    new_tags: Annotated[Optional[list[str]], typer.Argument(
        help="Set the feed's context tags",
    )] = None,
    clear: Annotated[bool, typer.Option(
        "--clear",
        help="Remove the feed's context tags",
    )] = False,
):
    """Show or set the context tags given to the model for a feed's entries."""
    store = _get_tagger().tag_store
    if clear:
        current = store.set_feed_tags(feed_id, [])
    elif new_tags:
        current = store.set_feed_tags(feed_id, new_tags)
    else:
        current = store.get_feed_tags(feed_id)

    if _get_json_output():
        _echo_json({feed_id: current})
    else:
        typer.echo(", ".join(current) if current else f"No tags for feed {feed_id}.")


# -----------------------------------------------------------------------------
# Filters and retention
# -----------------------------------------------------------------------------

@app.command("filter")
def filter_cmd(
    include: Annotated[Optional[list[str]], typer.Option(
        "--include", "-i",
        help="Toggle a tag in the include filter (repeatable)",
    )] = None,
    exclude: Annotated[Optional[list[str]], typer.Option(
        "--exclude", "-x",
        help="Toggle a tag in the exclude filter (repeatable)",
    )] = None,
    clear: Annotated[bool, typer.Option(
        "--clear",
        help="Clear all filters",
    )] = False,
):
    """
    Show or toggle the active tag filters.

    \b
    Examples:
        feedtags filter --include tech     # show only tech entries
        feedtags filter --exclude politics # hide politics entries
        feedtags filter --clear
    """
    store = _get_tagger().tag_store
    if clear:
        store.clear_filters()
    try:
        for tag in include or []:
            store.toggle_filter(tag, FilterMode.INCLUDE)
        for tag in exclude or []:
            store.toggle_filter(tag, FilterMode.EXCLUDE)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    filters = store.get_filters()
    if _get_json_output():
        _echo_json({**filters.to_dict(), "active": active_filter_count(filters)})
    else:
        typer.echo(_format_filters(filters))


@app.command()
def visible(
    ids: Annotated[list[str], typer.Argument(help="Entry ids, in display order")],
):
    """List which of the given entries pass the active filters."""
    store = _get_tagger().tag_store
    shown = visible_ids(ids, store.get_assignments(), store.get_filters())
    if _get_json_output():
        _echo_json(shown)
    else:
        for entry_id in shown:
            typer.echo(entry_id)


@app.command()
def prune(
    read_ids: Annotated[list[str], typer.Argument(help="Ids of entries the user has read")],
    days: Annotated[Optional[int], typer.Option(
        "--days", "-d",
        help="Keep tags of read entries for this many days (default: from config)",
    )] = None,
):
    """Remove tags of read entries older than the retention period."""
    removed = _get_tagger().prune(read_ids, days)
    if _get_json_output():
        _echo_json({"removed": removed})
    else:
        typer.echo(f"Removed {removed} tag assignment(s)")


# -----------------------------------------------------------------------------
# Configuration
# -----------------------------------------------------------------------------

@app.command()
def config(
    provider: Annotated[Optional[str], typer.Option(
        "--provider", "-p",
        help="Classifier provider: local, anthropic, openai",
    )] = None,
    model: Annotated[Optional[str], typer.Option(
        "--model", "-m",
        help="Model name for the selected provider",
    )] = None,
):
    """
    Show configuration, or update the provider and model.

    API keys are read from the environment (ANTHROPIC_API_KEY,
    OPENAI_API_KEY) or from feedtags.toml; they are never printed.
    """
    from .config import (
        Provider, get_store_path, load_config, load_or_create_config, save_config,
    )
    from .errors import ConfigurationError

    store_path = get_store_path(_get_store_override())
    load_or_create_config(store_path)

    if provider or model:
        # Reload without environment fallbacks so env secrets aren't saved
        cfg = load_config(store_path)
        try:
            if provider:
                cfg.provider.provider = Provider.parse(provider)
        except ConfigurationError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1)
        if model:
            selected = cfg.provider.provider
            if selected is Provider.ANTHROPIC:
                cfg.provider.anthropic_model = model
            elif selected is Provider.OPENAI:
                cfg.provider.openai_model = model
            else:
                cfg.provider.local_model = model
        save_config(cfg)

    cfg = load_or_create_config(store_path)
    p = cfg.provider
    result = {
        "file": str(cfg.config_path),
        "store": str(store_path),
        "provider": p.provider.value,
        "model": p.model,
        "local_url": p.local_url,
        "timeout": p.timeout,
        "anthropic_api_key": bool(p.anthropic_api_key),
        "openai_api_key": bool(p.openai_api_key),
        "feedbin": cfg.feedbin.configured,
        "days_to_keep": cfg.days_to_keep,
    }
    if _get_json_output():
        _echo_json(result)
        return
    for key, value in result.items():
        if isinstance(value, bool):
            value = "set" if value else "not set"
        typer.echo(f"{key}: {value}")


def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="feedtags CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
