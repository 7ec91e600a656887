"""
Classification scheduler: a FIFO queue of entry ids classified in batches.

Entries are taken from the queue in groups of at most `concurrency`.
Every entry of a batch is classified at the same time on a thread pool,
and the whole batch settles before the next one starts, with a short
pause between batches so the provider endpoint is not saturated.

Only one processing loop runs at a time. enqueue() while the loop is
running extends the queue; the running loop picks the new ids up.

Per-entry state:
    UNQUEUED -> QUEUED -> IN_FLIGHT -> TAGGED | FAILED

FAILED means no tag write happened (provider error, no title, or the
model had no opinion). Such an entry can be enqueued again later.
"""

import logging
import threading
import time
from collections.abc import Callable, Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .fetch import EntryFetcher, merge_entry
from .parsing import parse_tags
from .prompts import build_prompt
from .providers.base import ClassifierProvider
from .tag_store import TagStore
from .types import Item, TagAssignment

logger = logging.getLogger(__name__)

CONCURRENCY_LIMIT = 5
BATCH_DELAY_SECONDS = 0.1


class ItemState(str, Enum):
    UNQUEUED = "unqueued"
    QUEUED = "queued"
    IN_FLIGHT = "in_flight"
    TAGGED = "tagged"
    FAILED = "failed"


@dataclass(frozen=True)
class SchedulerStatus:
    """Best-effort progress snapshot."""
    queued: int
    in_flight: int
    running: bool
    batch_size: int = 0

    @property
    def remaining(self) -> int:
        return self.queued + self.in_flight


@dataclass
class RunStats:
    """Outcome counts for one drain of the queue."""
    batches: int = 0
    tagged: int = 0
    untagged: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.tagged + self.untagged + self.failed


class _Outcome(str, Enum):
    TAGGED = "tagged"
    UNTAGGED = "untagged"
    FAILED = "failed"


class ClassificationScheduler:
    """
    Bounded-concurrency classification of queued entries.

    Example:
        scheduler = ClassificationScheduler(tag_store, classifier)
        scheduler.enqueue(["101", "102"], known={"101": Item("101", "Title")})
        scheduler.wait()
    """

    def __init__(
        self,
        tag_store: TagStore,
        classifier: ClassifierProvider,
        fetcher: Optional[EntryFetcher] = None,
        *,
        concurrency: int = CONCURRENCY_LIMIT,
        batch_delay: float = BATCH_DELAY_SECONDS,
        on_result: Callable[[str, TagAssignment], None] | None = None,
        on_progress: Callable[[SchedulerStatus], None] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._tag_store = tag_store
        self._classifier = classifier
        self._fetcher = fetcher
        self._concurrency = concurrency
        self._batch_delay = batch_delay
        self._on_result = on_result
        self._on_progress = on_progress
        self._sleep = sleep

        # Queue is an owned list read from _head; batches are slices of it
        self._queue: list[str] = []
        self._head = 0
        self._queued: set[str] = set()
        self._in_flight: set[str] = set()
        self._failed: set[str] = set()
        self._known: dict[str, Item] = {}
        self._batch_size = 0

        self._lock = threading.Lock()
        self._running = False
        self._closed = False
        self._idle = threading.Event()
        self._idle.set()
        self._thread: Optional[threading.Thread] = None
        self._executor = ThreadPoolExecutor(
            max_workers=concurrency, thread_name_prefix="feedtags-classify",
        )

    # -------------------------------------------------------------------------
    # Public interface
    # -------------------------------------------------------------------------

    def enqueue(
        self,
        ids: Iterable[str],
        known: Mapping[str, Item] | None = None,
        *,
        start: bool = True,
    ) -> int:
        """
        Queue entries for classification.

        Ids already tagged, queued or in flight are skipped. If `start` is
        set and no loop is running, a background loop is started.

        Args:
            ids: Entry ids in the order they should be processed
            known: Snapshots of entries (title, summary, feed) used when
                the full entry can't be fetched
            start: Start the background loop (False: call process() later)

        Returns:
            Number of ids added to the queue
        """
        known = known or {}
        added = 0
        # Read before taking our lock: store listeners may call enqueue
        tagged = self._tag_store.tagged_ids()
        with self._lock:
            if self._closed:
                raise RuntimeError("Scheduler is closed")
            for raw in ids:
                item_id = str(raw)
                if item_id in self._queued or item_id in self._in_flight:
                    continue
                if item_id in tagged:
                    continue
                self._queue.append(item_id)
                self._queued.add(item_id)
                self._failed.discard(item_id)
                if item_id in known:
                    self._known[item_id] = known[item_id]
                added += 1

            if start and added and not self._running:
                self._running = True
                self._idle.clear()
                self._thread = threading.Thread(
                    target=self._run_loop_safe,
                    name="feedtags-scheduler",
                    daemon=True,
                )
                self._thread.start()

        if added:
            logger.debug("Queued %d entries for classification", added)
        return added

    def process(self) -> RunStats:
        """
        Drain the queue on the calling thread.

        Raises:
            RuntimeError: If the scheduler is closed or a background loop
                is already running
        """
        with self._lock:
            if self._closed:
                raise RuntimeError("Scheduler is closed")
            if self._running:
                raise RuntimeError("A classification loop is already running")
            self._running = True
            self._idle.clear()
        return self._run_loop()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the queue is drained. Returns False on timeout."""
        return self._idle.wait(timeout)

    def status(self) -> SchedulerStatus:
        with self._lock:
            return self._status_locked()

    def state(self, item_id: str) -> ItemState:
        """Where an entry is in its classification lifecycle."""
        item_id = str(item_id)
        with self._lock:
            if item_id in self._in_flight:
                return ItemState.IN_FLIGHT
            if item_id in self._queued:
                return ItemState.QUEUED
            failed = item_id in self._failed
        if self._tag_store.is_tagged(item_id):
            return ItemState.TAGGED
        return ItemState.FAILED if failed else ItemState.UNQUEUED

    def close(self) -> None:
        """Stop accepting work, let the current loop finish, shut the pool."""
        with self._lock:
            self._closed = True
            thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        self._executor.shutdown(wait=True)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    # -------------------------------------------------------------------------
    # Processing loop
    # -------------------------------------------------------------------------

    def _status_locked(self) -> SchedulerStatus:
        return SchedulerStatus(
            queued=len(self._queue) - self._head,
            in_flight=len(self._in_flight),
            running=self._running,
            batch_size=self._batch_size,
        )

    def _take_batch(self) -> list[str]:
        """Slice the next batch off the queue. Caller holds the lock."""
        end = min(self._head + self._concurrency, len(self._queue))
        batch = self._queue[self._head:end]
        self._head = end
        if self._head == len(self._queue):
            # Drained: reset rather than letting consumed slots accumulate
            self._queue = []
            self._head = 0
        self._queued.difference_update(batch)
        self._in_flight.update(batch)
        self._batch_size = len(batch)
        return batch

    def _run_loop_safe(self) -> None:
        """Background-thread wrapper for the loop. Logs failures."""
        try:
            stats = self._run_loop()
        except Exception as e:
            logger.error("Classification loop failed: %s", e, exc_info=True)
            return
        logger.info(
            "Finished classifying: %d tagged, %d untagged, %d failed",
            stats.tagged, stats.untagged, stats.failed,
        )

    def _run_loop(self) -> RunStats:
        stats = RunStats()
        try:
            while True:
                with self._lock:
                    batch = self._take_batch()
                    if not batch:
                        # Clearing the flag under the lock means a concurrent
                        # enqueue either lands in this loop or starts a new one
                        self._running = False
                        self._batch_size = 0
                        self._idle.set()
                        return stats
                    status = self._status_locked()

                logger.info("Classifying %d entries...", status.remaining)
                if self._on_progress is not None:
                    try:
                        self._on_progress(status)
                    except Exception as e:
                        logger.warning("Progress callback failed: %s", e)

                outcomes = self._run_batch(batch)
                stats.batches += 1
                for outcome in outcomes:
                    if outcome is _Outcome.TAGGED:
                        stats.tagged += 1
                    elif outcome is _Outcome.UNTAGGED:
                        stats.untagged += 1
                    else:
                        stats.failed += 1

                with self._lock:
                    self._in_flight.difference_update(batch)
                    self._batch_size = 0
                    more = len(self._queue) > self._head
                if more:
                    self._sleep(self._batch_delay)
        finally:
            with self._lock:
                if self._running:
                    self._running = False
                    self._in_flight.clear()
                    self._batch_size = 0
                    self._idle.set()

    def _run_batch(self, batch: list[str]) -> list[_Outcome]:
        """Classify every entry of a batch concurrently; wait for all."""
        futures = [self._executor.submit(self._attempt, item_id) for item_id in batch]
        wait(futures)
        return [f.result() for f in futures]

    # -------------------------------------------------------------------------
    # Per-entry attempt
    # -------------------------------------------------------------------------

    def _resolve_item(self, item_id: str) -> Item:
        """Fetch the full entry, falling back to the known snapshot."""
        with self._lock:
            known = self._known.pop(item_id, None)

        fetched = None
        if self._fetcher is not None:
            try:
                fetched = self._fetcher.fetch(item_id)
            except Exception as e:
                logger.warning(
                    "Could not fetch entry %s, using summary only: %s", item_id, e,
                )
        return merge_entry(known, fetched, item_id)

    def _attempt(self, item_id: str) -> _Outcome:
        """Classify one entry. Never raises: failures stay with the entry."""
        try:
            item = self._resolve_item(item_id)
            if not item.title:
                logger.warning("No title found for entry %s, skipping", item_id)
                return self._settle_untagged(item_id, _Outcome.FAILED)

            prompt = build_prompt(
                item,
                self._tag_store.all_tags(),
                self._tag_store.get_feed_tags(item.feed_id),
            )
            raw = self._classifier.classify(prompt)
            result = parse_tags(raw)
            if not result.tags:
                logger.info("No tags for entry %s (%s)", item_id, item.title)
                return self._settle_untagged(item_id, _Outcome.UNTAGGED)

            assignment = self._tag_store.set_assignment(
                item_id, result.tags, result.reasons,
            )
        except Exception as e:
            logger.warning("Failed to classify entry %s: %s", item_id, e)
            return self._settle_untagged(item_id, _Outcome.FAILED)

        logger.info("Tagged %r with: %s", item.title, ", ".join(assignment.tags))
        if self._on_result is not None:
            try:
                self._on_result(item_id, assignment)
            except Exception as e:
                logger.warning("Result callback failed for %s: %s", item_id, e)
        return _Outcome.TAGGED

    def _settle_untagged(self, item_id: str, outcome: _Outcome) -> _Outcome:
        with self._lock:
            self._failed.add(item_id)
        return outcome
