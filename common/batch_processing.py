"""
Bounded worker pools with cooperative cancellation.

Each pipeline stage that blocks on the network (feed fetching, per-article
classification) runs its items through its own BatchProcessor. The whole
batch lives inside one BatchContext carrying a deadline and a cancel flag.
"""

import logging
import threading
import time
import traceback
from concurrent.futures import ThreadPoolExecutor, FIRST_COMPLETED, wait
from typing import Any, Callable, Dict, Iterable, List, Optional

from common.errors import BatchCancelledError

logger = logging.getLogger(__name__)


class BatchContext:
    """
    Cancellable, deadline-bound execution context for one batch.

    Cancellation is cooperative: it stops new work from being dispatched and
    wakes waiters, but never interrupts a worker that is already running.
    """

    def __init__(self, timeout: Optional[float] = None, parent: Optional["BatchContext"] = None,
                 clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._event = threading.Event()
        self._reason = None
        self.parent = parent
        self.deadline = clock() + timeout if timeout is not None else None
        if parent is not None and parent.deadline is not None:
            if self.deadline is None or parent.deadline < self.deadline:
                self.deadline = parent.deadline

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self.parent is not None and self.parent.cancelled:
            return True
        return self.deadline is not None and self._clock() >= self.deadline

    @property
    def reason(self) -> Optional[str]:
        if self._reason:
            return self._reason
        if self.parent is not None and self.parent.cancelled:
            return self.parent.reason
        if self.deadline is not None and self._clock() >= self.deadline:
            return "deadline exceeded"
        return None

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when unbounded."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - self._clock())

    def raise_if_cancelled(self, partial: Any = None) -> None:
        if self.cancelled:
            raise BatchCancelledError(self.reason or "cancelled", partial=partial)

    def wait(self, seconds: float) -> bool:
        """Sleep up to `seconds`, waking early on cancel. Returns True if cancelled."""
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        self._event.wait(max(0.0, seconds))
        return self.cancelled

    def child(self, timeout: Optional[float] = None) -> "BatchContext":
        """Create a context that is cancelled with this one and never outlives it."""
        return BatchContext(timeout=timeout, parent=self, clock=self._clock)


class BatchProcessor:
    """
    Process items on a fixed-size thread pool.

    Features:
    - At most `max_workers` items in flight; new items are dispatched only
      when a slot frees up
    - Optional spacing between dispatches for rate-limited services
    - Per-item failures are captured as result dicts, never raised
    - Cancellation (explicit or deadline) raises BatchCancelledError without
      waiting for in-flight work
    """

    def __init__(self, max_workers=3, rate_limit_delay=0.0, poll_interval=0.05, name="batch"):
        """
        Initialize the batch processor.

        Args:
            max_workers: Maximum number of concurrent workers
            rate_limit_delay: Minimum delay between dispatches (seconds)
            poll_interval: How often the dispatcher re-checks cancellation (seconds)
            name: Thread name prefix for the pool
        """
        self.max_workers = max(1, int(max_workers))
        self.rate_limit_delay = rate_limit_delay
        self.poll_interval = poll_interval
        self.name = name
        self.lock = threading.RLock()
        self.last_task_time = 0.0
        self.logger = logging.getLogger(f"{__name__}.BatchProcessor")
        self.logger.debug(f"Initialized BatchProcessor '{name}' with {self.max_workers} workers")

    def process_batch(self, items: Iterable[Any], task_func: Callable[[Any], Any],
                      context: Optional[BatchContext] = None,
                      on_result: Optional[Callable[[Dict[str, Any]], None]] = None) -> List[Dict[str, Any]]:
        """
        Process a batch of items using the provided function.

        Args:
            items: Items to process
            task_func: Function to call for each item (item) -> result
            context: Cancellation/deadline context for the whole batch
            on_result: Called from the worker thread with each outcome dict as
                soon as its task finishes

        Returns:
            List of outcome dicts in order of completion. Each has 'item',
            'success', 'elapsed' and either 'result' or 'error'/'exception'.

        Raises:
            BatchCancelledError: if the context is cancelled or its deadline
                passes; `partial` holds the outcomes gathered so far
        """
        items = list(items)
        if not items:
            return []

        context = context or BatchContext()
        context.raise_if_cancelled(partial=[])

        self.logger.info(f"Processing batch '{self.name}' of {len(items)} items with {self.max_workers} workers")
        start_time = time.time()
        results: List[Dict[str, Any]] = []
        slots = threading.BoundedSemaphore(self.max_workers)
        executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix=self.name)
        futures = []

        def run(item):
            try:
                outcome = self._execute_task(task_func, item)
                with self.lock:
                    results.append(outcome)
                if on_result is not None:
                    on_result(outcome)
                return outcome
            finally:
                slots.release()

        try:
            for item in items:
                while not slots.acquire(timeout=self.poll_interval):
                    context.raise_if_cancelled(partial=self._snapshot(results))
                if context.cancelled:
                    slots.release()
                    context.raise_if_cancelled(partial=self._snapshot(results))
                self._throttle(context)
                futures.append(executor.submit(run, item))

            pending = set(futures)
            while pending:
                context.raise_if_cancelled(partial=self._snapshot(results))
                timeout = self.poll_interval
                remaining = context.remaining()
                if remaining is not None:
                    timeout = min(timeout, remaining)
                _, pending = wait(pending, timeout=timeout, return_when=FIRST_COMPLETED)
        except BatchCancelledError:
            self.logger.warning(
                f"Batch '{self.name}' cancelled ({context.reason}) after dispatching "
                f"{len(futures)}/{len(items)} items"
            )
            executor.shutdown(wait=False, cancel_futures=True)
            raise

        executor.shutdown(wait=True)

        elapsed = time.time() - start_time
        success_count = sum(1 for r in results if r.get('success', False))
        self.logger.info(
            f"Batch '{self.name}' completed in {elapsed:.2f}s: "
            f"{len(results)}/{len(items)} processed, {success_count} successful"
        )
        return results

    def _snapshot(self, results):
        with self.lock:
            return list(results)

    def _throttle(self, context: BatchContext) -> None:
        if self.rate_limit_delay <= 0:
            return
        with self.lock:
            since_last = time.time() - self.last_task_time
            if since_last < self.rate_limit_delay:
                context.wait(self.rate_limit_delay - since_last)
            self.last_task_time = time.time()

    def _execute_task(self, task_func, item):
        """
        Execute a single task with error handling.

        Args:
            task_func: Function to execute
            item: Item to process

        Returns:
            Task outcome with success indicator
        """
        start_time = time.time()
        try:
            result = task_func(item)
            return {
                'item': item,
                'success': True,
                'result': result,
                'elapsed': time.time() - start_time,
            }
        except Exception as e:
            self.logger.debug(f"Task failed in batch '{self.name}': {e}")
            return {
                'item': item,
                'success': False,
                'error': str(e),
                'exception': e,
                'traceback': traceback.format_exc(),
                'elapsed': time.time() - start_time,
            }
