"""
Tagger: the store-backed entry point used by the CLI and embedders.

Wires the store directory's config, record store, tag store, classifier
and fetcher together. The classifier is created on first use so commands
that only read tags never need an API key.
"""

import logging
import threading
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Optional

from .config import StoreConfig, get_store_path, load_or_create_config
from .fetch import EntryFetcher, FeedbinFetcher
from .providers.base import ClassifierProvider, ConnectionStatus, create_classifier
from .record_store import PersistenceStore, RecordStore
from .scheduler import ClassificationScheduler, RunStats
from .tag_store import TagStore
from .types import Item

logger = logging.getLogger(__name__)


class Tagger:
    """
    Classify entries and manage their tags in one store directory.

    Example:
        with Tagger() as tagger:
            tagger.classify(["4021"], known={"4021": Item("4021", "Rust 2.0")})
            tagger.tag_store.get_assignment("4021")
    """

    def __init__(
        self,
        store_path: Optional[Path] = None,
        *,
        records: Optional[PersistenceStore] = None,
        classifier: Optional[ClassifierProvider] = None,
        fetcher: Optional[EntryFetcher] = None,
        config: Optional[StoreConfig] = None,
    ):
        """
        Args:
            store_path: Store directory (default: FEEDTAGS_STORE_PATH or ~/.feedtags)
            records: Injected record store (default: SQLite in the store directory)
            classifier: Injected classifier (default: from config, on first use)
            fetcher: Injected entry fetcher (default: Feedbin if configured)
            config: Injected config (default: loaded or created from the store)
        """
        self._store_path = get_store_path(store_path)
        self._config = config or load_or_create_config(self._store_path)

        from .logging_config import configure_ops_log
        self._ops_log_handler = configure_ops_log(self._store_path)

        self._records = records if records is not None else RecordStore(self._config.db_path)
        self._tag_store = TagStore(self._records)
        self._classifier = classifier
        self._fetcher = fetcher
        self._fetcher_resolved = fetcher is not None
        self._provider_init_lock = threading.Lock()

    @property
    def config(self) -> StoreConfig:
        return self._config

    @property
    def store_path(self) -> Path:
        return self._store_path

    @property
    def tag_store(self) -> TagStore:
        return self._tag_store

    def get_classifier(self) -> ClassifierProvider:
        """The configured classifier, created on first use.

        Raises:
            ConfigurationError: If the provider is unknown or missing its key
        """
        with self._provider_init_lock:
            if self._classifier is None:
                self._classifier = create_classifier(self._config.provider)
                logger.info(
                    "Using %s classifier (%s)",
                    self._config.provider.provider.value, self._config.provider.model,
                )
            return self._classifier

    def get_fetcher(self) -> Optional[EntryFetcher]:
        """Feedbin fetcher when credentials are configured, else None."""
        with self._provider_init_lock:
            if not self._fetcher_resolved:
                if self._config.feedbin.configured:
                    self._fetcher = FeedbinFetcher.from_credentials(self._config.feedbin)
                else:
                    logger.debug("Feedbin credentials not set; classifying from summaries")
                self._fetcher_resolved = True
            return self._fetcher

    def scheduler(self, **kwargs) -> ClassificationScheduler:
        """A scheduler bound to this store's tag store, classifier and fetcher."""
        return ClassificationScheduler(
            self._tag_store, self.get_classifier(), self.get_fetcher(), **kwargs,
        )

    def classify(
        self,
        ids: Iterable[str],
        known: Mapping[str, Item] | None = None,
        **kwargs,
    ) -> RunStats:
        """Classify untagged entries now, on the calling thread."""
        with self.scheduler(**kwargs) as scheduler:
            scheduler.enqueue(ids, known, start=False)
            return scheduler.process()

    def prune(self, read_ids: Iterable[str], days_to_keep: Optional[int] = None) -> int:
        """Retention pass using the configured days_to_keep by default."""
        days = self._config.days_to_keep if days_to_keep is None else days_to_keep
        return self._tag_store.prune(read_ids, days)

    def check(self) -> ConnectionStatus:
        """Test the provider connection. Never raises."""
        from .errors import ConfigurationError
        try:
            classifier = self.get_classifier()
        except ConfigurationError as e:
            return ConnectionStatus(False, str(e))
        return classifier.check()

    def close(self) -> None:
        """Close the fetcher, record store and ops log."""
        if self._fetcher is not None and hasattr(self._fetcher, "close"):
            self._fetcher.close()
            self._fetcher = None
        if self._records is not None:
            self._records.close()
            self._records = None

        if self._ops_log_handler is not None:
            logging.getLogger("feedtags").removeHandler(self._ops_log_handler)
            self._ops_log_handler.close()
            self._ops_log_handler = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
