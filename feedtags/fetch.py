"""
Entry fetching: full entry text for classification.

The scheduler only knows an entry's id and (usually) a summary-only
snapshot. A fetcher returns the full entry so the prompt can use the
article body. FeedbinFetcher reads it from the Feedbin v2 API.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

import httpx

from .config import DEFAULT_FEEDBIN_URL, FeedbinCredentials
from .errors import ConfigurationError, FetchError
from .types import Item

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


@runtime_checkable
class EntryFetcher(Protocol):
    """Returns the full entry for an id, or raises FetchError."""

    def fetch(self, item_id: str) -> Item:
        ...


class FeedbinFetcher:
    """HTTP client for Feedbin entries (GET /entries/{id}.json)."""

    def __init__(
        self,
        email: str | None,
        password: str | None,
        api_url: str = DEFAULT_FEEDBIN_URL,
        *,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        if not email or not password:
            raise ConfigurationError(
                "Feedbin credentials not configured. Set FEEDBIN_EMAIL and "
                "FEEDBIN_PASSWORD or the [feedbin] section of feedtags.toml"
            )
        self._api_url = api_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self._api_url,
            auth=httpx.BasicAuth(email, password),
            headers={"Accept": "application/json"},
            timeout=timeout,
        )

    @classmethod
    def from_credentials(cls, credentials: FeedbinCredentials) -> "FeedbinFetcher":
        return cls(credentials.email, credentials.password, credentials.api_url)

    def fetch(self, item_id: str) -> Item:
        """GET /entries/{id}.json -> Item.

        Raises:
            FetchError: On transport failure, non-2xx status or a bad body
        """
        try:
            resp = self._client.get(f"/entries/{item_id}.json")
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            raise FetchError(
                f"Feedbin entry {item_id}: HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise FetchError(f"Feedbin entry {item_id}: {e}") from e
        except ValueError as e:
            raise FetchError(f"Feedbin entry {item_id}: invalid JSON") from e

        if not isinstance(data, dict):
            raise FetchError(f"Feedbin entry {item_id}: unexpected response")

        feed_id = data.get("feed_id")
        return Item(
            id=str(item_id),
            title=data.get("title") or "",
            summary=data.get("summary") or "",
            content=data.get("content") or None,
            author=data.get("author") or None,
            feed_id=str(feed_id) if feed_id is not None else None,
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def merge_entry(known: Item | None, fetched: Item | None, item_id: str) -> Item:
    """
    Combine a known snapshot with a fetched entry.

    Fetched fields win when present; the known feed title is kept since
    the entries API does not return it.
    """
    if fetched is None:
        return known or Item(id=str(item_id))
    if known is None:
        return fetched
    return Item(
        id=str(item_id),
        title=fetched.title or known.title,
        summary=fetched.summary or known.summary,
        content=fetched.content or known.content,
        feed_title=known.feed_title or fetched.feed_title,
        author=fetched.author or known.author,
        feed_id=fetched.feed_id or known.feed_id,
    )
