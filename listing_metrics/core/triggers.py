"""
Background trigger queue for listing and POI mutations.

Request handlers submit work and return immediately; a single worker thread
drains the queue. Failures never reach the submitter: they are logged,
kept on the bounded ``errors`` log (oldest dropped first) and passed to
the optional ``on_error`` callback.
"""
from __future__ import annotations

import logging
import queue
import threading
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable

from listing_metrics.core.proximity import ProximitySynchronizer
from listing_metrics.core.scores import refresh_listing_scores
from listing_metrics.core.valuation import refresh_listing_valuation


LOGGER = logging.getLogger(__name__)

LISTING_SYNC = "listing_sync"
POI_SYNC = "poi_sync"
VALUATION_REFRESH = "valuation_refresh"
SCORE_REFRESH = "score_refresh"

MAX_RECORDED_ERRORS = 500


@dataclass(slots=True, frozen=True)
class TriggerTask:
    kind: str
    entity_id: str


@dataclass(slots=True)
class TriggerFailure:
    task: TriggerTask
    error: Exception


class TriggerQueue:
    def __init__(
        self,
        handlers: dict[str, Callable[[str], Any]],
        on_error: Callable[[TriggerFailure], None] | None = None,
        max_errors: int = MAX_RECORDED_ERRORS,
    ) -> None:
        self._handlers = dict(handlers)
        self._on_error = on_error
        self._queue: queue.Queue[TriggerTask | None] = queue.Queue()
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self.errors: deque[TriggerFailure] = deque(maxlen=max_errors)

    @classmethod
    def for_repo(cls, repo: Any, on_error: Callable[[TriggerFailure], None] | None = None) -> "TriggerQueue":
        sync = ProximitySynchronizer(repo)
        return cls(
            {
                LISTING_SYNC: sync.sync_listing,
                POI_SYNC: sync.sync_poi,
                VALUATION_REFRESH: lambda listing_id: refresh_listing_valuation(repo, listing_id),
                SCORE_REFRESH: lambda listing_id: refresh_listing_scores(repo, listing_id),
            },
            on_error=on_error,
        )

    def submit(self, kind: str, entity_id: str) -> TriggerTask:
        if kind not in self._handlers:
            raise ValueError(f"Unknown trigger kind: {kind}")
        task = TriggerTask(kind=kind, entity_id=str(entity_id))
        self._ensure_worker()
        self._queue.put(task)
        return task

    def submit_listing_sync(self, listing_id: str) -> TriggerTask:
        return self.submit(LISTING_SYNC, listing_id)

    def submit_poi_sync(self, poi_id: str) -> TriggerTask:
        return self.submit(POI_SYNC, poi_id)

    def submit_valuation_refresh(self, listing_id: str) -> TriggerTask:
        return self.submit(VALUATION_REFRESH, listing_id)

    def submit_score_refresh(self, listing_id: str) -> TriggerTask:
        return self.submit(SCORE_REFRESH, listing_id)

    def submit_listing_changed(self, listing_id: str) -> list[TriggerTask]:
        return [self.submit_listing_sync(listing_id), self.submit_valuation_refresh(listing_id)]

    def drain_errors(self) -> list[TriggerFailure]:
        """Return the recorded failures and clear the log."""
        with self._lock:
            failures = list(self.errors)
            self.errors.clear()
        return failures

    def join(self) -> None:
        """Block until every submitted task has been handled (tests, shutdown)."""
        self._queue.join()

    def stop(self, timeout: float | None = None) -> None:
        with self._lock:
            thread = self._thread
            self._thread = None
        if thread is None:
            return
        self._queue.put(None)
        thread.join(timeout=timeout)

    def _ensure_worker(self) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._thread = threading.Thread(target=self._worker_loop, name="trigger-queue", daemon=True)
            self._thread.start()

    def _worker_loop(self) -> None:
        LOGGER.info("Trigger worker started")
        while True:
            task = self._queue.get()
            try:
                if task is None:
                    break
                self._run(task)
            finally:
                self._queue.task_done()
        LOGGER.info("Trigger worker stopped")

    def _run(self, task: TriggerTask) -> None:
        try:
            self._handlers[task.kind](task.entity_id)
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("Trigger %s failed for %s", task.kind, task.entity_id)
            failure = TriggerFailure(task=task, error=exc)
            with self._lock:
                self.errors.append(failure)
            if self._on_error:
                try:
                    self._on_error(failure)
                except Exception:  # noqa: BLE001
                    LOGGER.exception("Trigger error callback failed for %s", task.entity_id)
