"""Bounded worker pool that runs analysis tasks and collects results in order."""

from __future__ import annotations

import logging
import os
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, List, Optional, Sequence

from .analysis import ERROR_UNEXPECTED, AnalysisResult, AnalysisTask

logger = logging.getLogger(__name__)

ERROR_DEADLINE = "deadline_exceeded"

RunTask = Callable[[AnalysisTask], AnalysisResult]
ProgressHook = Callable[[int, int, AnalysisTask, AnalysisResult], None]


class PipelineError(RuntimeError):
    """The worker pool could not accept the batch or be torn down."""


def default_worker_count() -> int:
    return max(1, os.cpu_count() or 1)


class TaskDispatcher:
    """Owns one ThreadPoolExecutor for a single batch.

    Futures are handed out in submission order and collected in that same
    order: collecting task ``i`` blocks until it finishes even when later
    tasks are already done.
    """

    def __init__(self, run_task: RunTask, workers: Optional[int] = None) -> None:
        self.run_task = run_task
        self.workers = default_worker_count() if workers is None else max(1, int(workers))
        self._executor: Optional[ThreadPoolExecutor] = None
        self._sealed = False
        self._abandoned = False

    def __enter__(self) -> "TaskDispatcher":
        self._executor = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="pagesignals")
        logger.info("Starting thread pool with %d threads...", self.workers)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    def submit_all(self, tasks: Sequence[AnalysisTask]) -> List[Future]:
        if self._executor is None:
            raise PipelineError("dispatcher is not running; use it as a context manager")
        if self._sealed:
            raise PipelineError("dispatcher already accepted its batch")
        self._sealed = True
        futures: List[Future] = []
        for task in tasks:
            try:
                futures.append(self._executor.submit(self.run_task, task))
            except RuntimeError as exc:
                raise PipelineError(f"unable to submit {task.url}: {exc}") from exc
        return futures

    def collect(
        self,
        futures: Sequence[Future],
        tasks: Sequence[AnalysisTask],
        *,
        deadline: Optional[float] = None,
        progress_hook: Optional[ProgressHook] = None,
    ) -> List[AnalysisResult]:
        if len(futures) != len(tasks):
            raise ValueError("futures and tasks must line up one to one")
        deadline_at = None if deadline is None else time.monotonic() + max(0.0, deadline)
        total = len(futures)
        results: List[AnalysisResult] = []
        for index, (future, task) in enumerate(zip(futures, tasks), start=1):
            result = self._collect_one(future, task, deadline_at)
            results.append(result)
            if progress_hook is not None:
                try:
                    progress_hook(index, total, task, result)
                except Exception:
                    logger.debug("progress hook failed for %s", task.url, exc_info=True)
        return results

    def _collect_one(self, future: Future, task: AnalysisTask, deadline_at: Optional[float]) -> AnalysisResult:
        timeout = None if deadline_at is None else max(0.0, deadline_at - time.monotonic())
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError:
            self._abandoned = True
            logger.warning("Batch deadline exceeded before %s finished", task.url)
            return AnalysisResult.failed(task, ERROR_DEADLINE)
        except Exception as exc:
            logger.warning("Task for %s failed: %s: %s", task.url, exc.__class__.__name__, exc)
            return AnalysisResult.failed(task, ERROR_UNEXPECTED)

    def shutdown(self) -> None:
        """Release the pool. In-flight tasks are never cancelled.

        After a missed deadline, tasks still queued are cancelled and the call
        returns without waiting for the ones already running.
        """

        if self._executor is None:
            return
        executor, self._executor = self._executor, None
        try:
            if self._abandoned:
                executor.shutdown(wait=False, cancel_futures=True)
            else:
                executor.shutdown(wait=True)
        except Exception as exc:
            raise PipelineError(f"unable to shut down worker pool: {exc}") from exc


def dispatch(
    tasks: Sequence[AnalysisTask],
    *,
    run_task: RunTask,
    workers: Optional[int] = None,
    deadline: Optional[float] = None,
    progress_hook: Optional[ProgressHook] = None,
) -> List[AnalysisResult]:
    """Run every task on a fresh pool and return results in submission order."""

    tasks = list(tasks)
    with TaskDispatcher(run_task, workers=workers) as dispatcher:
        futures = dispatcher.submit_all(tasks)
        return dispatcher.collect(futures, tasks, deadline=deadline, progress_hook=progress_hook)


__all__ = [
    "ERROR_DEADLINE",
    "PipelineError",
    "TaskDispatcher",
    "default_worker_count",
    "dispatch",
]
