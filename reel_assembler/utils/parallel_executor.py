"""Parallel Executor - bounded per-scene parallelism with cooperative cancellation."""

import time
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Any, Callable, Optional

from reel_assembler.core.config import Settings
from reel_assembler.core.exceptions import JobCancelled


class ParallelExecutor:
    """Runs per-scene tasks on a thread pool and returns results in input order."""

    def __init__(self, settings: Settings, logger: Any):
        """
        Initialize parallel executor.

        Args:
            settings: Application settings
            logger: Logger instance
        """
        self.settings = settings
        self.logger = logger

    def map_ordered(
        self,
        tasks: list[Callable[[], Any]],
        task_names: Optional[list[str]] = None,
        max_workers: int = 1,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> list[Any]:
        """
        Execute tasks with at most ``max_workers`` in flight.

        The first failure is re-raised after outstanding tasks finish; tasks that
        have not started yet are dropped. ``should_cancel`` is polled before each
        task starts, so a cancellation request stops new work between tasks.

        Args:
            tasks: Zero-argument callables, one per scene
            task_names: Optional names for logging
            max_workers: Maximum number of parallel workers
            should_cancel: Optional cancellation probe

        Returns:
            Task results, index-aligned with ``tasks``

        Raises:
            JobCancelled: If cancellation was requested before all tasks started
            Exception: The first task failure, unchanged
        """
        if not tasks:
            return []

        names = [
            task_names[i] if task_names and i < len(task_names) else f"task_{i + 1}" for i in range(len(tasks))
        ]
        workers = max(1, min(max_workers, len(tasks)))
        start_time = time.time()

        def guarded(index: int) -> Any:
            if should_cancel and should_cancel():
                raise JobCancelled(f"Cancelled before {names[index]} started")
            task_start = time.time()
            result = tasks[index]()
            self.logger.debug(f"{names[index]} completed in {time.time() - task_start:.2f}s")
            return result

        if workers == 1:
            return [guarded(i) for i in range(len(tasks))]

        self.logger.debug(f"Parallel execution: {len(tasks)} tasks with max {workers} workers")
        results: list[Any] = [None] * len(tasks)
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {executor.submit(guarded, i): i for i in range(len(tasks))}
            done, pending = wait(futures, return_when=FIRST_EXCEPTION)
            for future in pending:
                future.cancel()

        first_error: Optional[BaseException] = None
        for future, index in futures.items():
            if future.cancelled():
                continue
            error = future.exception()
            if error is None:
                results[index] = future.result()
            elif first_error is None or (isinstance(first_error, JobCancelled) and not isinstance(error, JobCancelled)):
                first_error = error

        if first_error is not None:
            self.logger.error(f"Batch aborted after {time.time() - start_time:.2f}s: {first_error}")
            raise first_error

        self.logger.debug(f"Batch complete: {len(tasks)} tasks in {time.time() - start_time:.2f}s")
        return results
