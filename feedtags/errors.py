"""
Exception types and error logging for feedtags.

Logs full stack traces for debugging while showing clean messages to users.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path


class FeedtagsError(Exception):
    """Base class for feedtags errors."""


class ConfigurationError(FeedtagsError):
    """Missing API key, unknown provider, or missing credentials.

    Fatal for the classification attempt that hit it; never retried.
    """


class ProviderError(FeedtagsError):
    """An LLM provider call failed."""

    def __init__(self, message: str, *, provider: str = ""):
        super().__init__(message)
        self.provider = provider


class NetworkError(ProviderError):
    """Connection failure or timeout talking to a provider."""


class ProviderHTTPError(ProviderError):
    """Non-2xx status or a malformed response envelope."""

    def __init__(
        self,
        message: str,
        *,
        provider: str = "",
        status_code: int | None = None,
    ):
        super().__init__(message, provider=provider)
        self.status_code = status_code


class FetchError(FeedtagsError):
    """The entry fetch collaborator could not return an entry."""


def _error_log_path() -> Path:
    """Resolve error log path, respecting FEEDTAGS_STORE_PATH."""
    store = os.environ.get("FEEDTAGS_STORE_PATH")
    if store:
        return Path(store) / "feedtags-errors.log"
    return Path.home() / ".feedtags" / "feedtags-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write(f" {type(exc).__name__}: {exc}\n")
            f.write(traceback.format_exc())
    except OSError:
        pass  # Can't write error log, don't crash over it
    return log_path
