"""
Task Registry
=============

Tracks background summary jobs: status, coarse progress and cancellation.

A single `TaskRegistry` owns both the job records and the worker pool that
runs them. Jobs receive a `CancelToken` and check it between stages;
cancellation never interrupts a stage that is already running.
"""

import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

PENDING = "pending"
PROCESSING = "processing"
COMPLETED = "completed"
FAILED = "failed"
CANCELLED = "cancelled"

ACTIVE_STATES = (PENDING, PROCESSING)


class InvalidTransition(ValueError):
    """The task is not in a state that allows the requested change."""


class JobCancelled(Exception):
    """Raised inside a job when its token was cancelled at a stage boundary."""


class CancelToken:
    """Cooperative cancellation flag."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise JobCancelled()


class ProgressItem(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    video_id: int
    video_title: str
    channel_name: str
    status: str = PENDING
    progress: int = 0
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    error: Optional[str] = None

    def api_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TaskRegistry:
    """
    Registry of summary jobs plus the executor that runs them.

    Usage:
        registry = TaskRegistry(max_workers=2)
        item = registry.register(video_id=1, video_title="...", channel_name="...")
        registry.submit(item.id, job)  # job(token, report) -> None
    """

    def __init__(self, max_workers: int = 2):
        self._items: Dict[str, ProgressItem] = {}
        self._tokens: Dict[str, CancelToken] = {}
        self._futures: Dict[str, Future] = {}
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="summary")

    @staticmethod
    def new_id() -> str:
        return f"summary_{uuid.uuid4().hex[:12]}"

    def register(self, video_id: int, video_title: str, channel_name: str) -> ProgressItem:
        item = ProgressItem(
            id=self.new_id(),
            video_id=video_id,
            video_title=video_title,
            channel_name=channel_name,
            status=PENDING,
            start_time=_now(),
        )
        with self._lock:
            self._items[item.id] = item
            self._tokens[item.id] = CancelToken()
        return item.model_copy()

    def get(self, task_id: str) -> Optional[ProgressItem]:
        with self._lock:
            item = self._items.get(task_id)
            return item.model_copy() if item else None

    def list(self) -> List[ProgressItem]:
        with self._lock:
            return [i.model_copy() for i in self._items.values()]

    def token(self, task_id: str) -> CancelToken:
        with self._lock:
            return self._tokens[task_id]

    def update(self, task_id: str, progress: int) -> None:
        """Mark a running task's progress; ignored once the task has finished."""
        with self._lock:
            item = self._items.get(task_id)
            if item is None or item.status not in ACTIVE_STATES:
                return
            item.status = PROCESSING
            item.progress = progress

    def _finish(self, task_id: str, status: str, error: Optional[str] = None) -> None:
        with self._lock:
            item = self._items.get(task_id)
            if item is None or item.status not in ACTIVE_STATES:
                return
            item.status = status
            item.end_time = _now()
            if status == COMPLETED:
                item.progress = 100
            if error:
                item.error = error

    def complete(self, task_id: str) -> None:
        self._finish(task_id, COMPLETED)

    def fail(self, task_id: str, error: str) -> None:
        self._finish(task_id, FAILED, error)

    def cancel(self, task_id: str) -> ProgressItem:
        """
        Request cancellation; the job stops at its next stage boundary.

        Raises:
            KeyError if the task is unknown
            InvalidTransition if the task already finished
        """
        with self._lock:
            item = self._items.get(task_id)
            if item is None:
                raise KeyError(task_id)
            if item.status not in ACTIVE_STATES:
                raise InvalidTransition(f"Task {task_id} is {item.status} and cannot be cancelled")
            self._tokens[task_id].cancel()
            item.status = CANCELLED
            item.end_time = _now()
            return item.model_copy()

    def remove(self, task_id: str) -> bool:
        with self._lock:
            self._tokens.pop(task_id, None)
            self._futures.pop(task_id, None)
            return self._items.pop(task_id, None) is not None

    def evict_finished(self, older_than: timedelta) -> int:
        """Drop finished tasks whose end time is older than `older_than`."""
        cutoff = _now() - older_than
        with self._lock:
            stale = [
                tid for tid, it in self._items.items()
                if it.status not in ACTIVE_STATES and it.end_time and it.end_time < cutoff
            ]
        for tid in stale:
            self.remove(tid)
        return len(stale)

    def submit(self, task_id: str, job: Callable[[CancelToken, Callable[[int], None]], None]) -> Future:
        """
        Run `job(token, report)` on the worker pool.

        `report(pct)` updates progress. The job finishes the task as
        completed when it returns, cancelled when it raises JobCancelled,
        failed on any other exception.
        """
        token = self.token(task_id)

        def run() -> None:
            try:
                token.raise_if_cancelled()
                job(token, lambda pct: self.update(task_id, pct))
            except JobCancelled:
                logger.info("Task %s cancelled", task_id)
                self._finish(task_id, CANCELLED)
                return
            except Exception as e:
                logger.exception("Task %s failed", task_id)
                self.fail(task_id, str(e) or type(e).__name__)
                return
            self.complete(task_id)

        future = self._executor.submit(run)
        with self._lock:
            self._futures[task_id] = future
        return future

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
