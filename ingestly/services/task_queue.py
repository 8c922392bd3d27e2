"""Durable scraping queue: a fixed worker pool with rate limiting and retries.

Submission and execution are decoupled through :class:`TaskStore`.  Workers
claim tasks in priority order (lower value first, then insertion order), wait
for the shared rate limiter, and run the processor under tenacity retries
with a per-attempt timeout.  Every terminal outcome is published as a
:class:`TaskResult` to all subscribers.
"""

import asyncio
import inspect
import logging
import time
from typing import Any, Awaitable, Callable, List, Optional, Set, Union

from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, wait_exponential, wait_fixed

from ingestly.models.options import QueueOptions
from ingestly.models.task import QueueStats, ScrapingTask, TaskResult
from ingestly.services.rate_limiter import RateLimiter
from ingestly.services.task_store import ACTIVE, COMPLETED, FAILED, WAITING, TaskStore

logger = logging.getLogger(__name__)

TaskProcessor = Callable[[ScrapingTask], Awaitable[Any]]
ResultHandler = Callable[[TaskResult], Union[Awaitable[None], None]]


class TaskQueue:
    def __init__(
        self,
        options: Optional[QueueOptions] = None,
        store: Optional[TaskStore] = None,
        on_result: Optional[ResultHandler] = None,
    ):
        self.options = options or QueueOptions()
        self.store = store or TaskStore(queue_name=self.options.queue_name)
        self._limiter = RateLimiter(self.options.rate_limit_per_second)
        self._subscribers: List[ResultHandler] = []
        if on_result is not None:
            self.subscribe(on_result)
        self._processor: Optional[TaskProcessor] = None
        self._workers: List[asyncio.Task] = []
        self._stopping = asyncio.Event()
        self._delayed: Set[str] = set()
        logger.info(
            "TaskQueue initialised",
            extra={
                "queue_name": self.options.queue_name,
                "concurrency": self.options.concurrency,
                "rate_limit_per_second": self.options.rate_limit_per_second,
            },
        )

    @property
    def is_running(self) -> bool:
        return bool(self._workers)

    async def open(self) -> None:
        await self.store.open()

    async def close(self) -> None:
        await self.stop()
        await self.store.close()

    async def __aenter__(self) -> "TaskQueue":
        await self.open()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Result channel
    # ------------------------------------------------------------------

    def subscribe(self, handler: ResultHandler) -> None:
        self._subscribers.append(handler)

    def unsubscribe(self, handler: ResultHandler) -> None:
        if handler in self._subscribers:
            self._subscribers.remove(handler)

    async def _publish(self, result: TaskResult) -> None:
        for handler in list(self._subscribers):
            try:
                outcome = handler(result)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                logger.exception("Result handler failed for task %s", result.task_id)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(self, task: ScrapingTask) -> str:
        await self.open()
        if not await self.store.add(task):
            logger.debug("Task %s already queued – ignoring duplicate", task.id)
        else:
            logger.debug(
                "Added task to queue",
                extra={"task_id": task.id, "url": task.url, "priority": task.priority},
            )
        return task.id

    async def submit_many(self, tasks: List[ScrapingTask]) -> List[str]:
        await self.open()
        added = await self.store.add_many(tasks)
        logger.info("Added %d tasks to queue", added)
        return [task.id for task in tasks]

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def start(self, processor: TaskProcessor) -> None:
        if self._workers:
            logger.warning("Queue processing is already running")
            return
        await self.open()
        requeued = await self.store.requeue_active()
        if requeued:
            logger.info("Re-queued %d tasks left active by a previous run", requeued)

        self._processor = processor
        self._stopping.clear()
        self._workers = [
            asyncio.create_task(self._worker_loop(), name=f"{self.options.queue_name}-worker-{i}")
            for i in range(self.options.concurrency)
        ]
        logger.info("Started queue processing", extra={"concurrency": self.options.concurrency})

    async def stop(self) -> None:
        """Stop claiming new tasks and wait for in-flight ones to finish."""
        if not self._workers:
            return
        self._stopping.set()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("Stopped queue processing")

    async def join(self) -> None:
        """Block until no task is waiting, running or backing off."""
        while True:
            counts = await self.store.counts()
            if counts[WAITING] == 0 and counts[ACTIVE] == 0:
                return
            await asyncio.sleep(self.options.poll_interval)

    async def _worker_loop(self) -> None:
        while not self._stopping.is_set():
            task = await self.store.claim()
            if task is None:
                try:
                    await asyncio.wait_for(self._stopping.wait(), timeout=self.options.poll_interval)
                except asyncio.TimeoutError:
                    pass
                continue
            try:
                await self._run(task)
            except Exception:
                # bookkeeping failure; the worker must keep serving the queue
                logger.exception("Worker error while running task %s", task.id)

    def _wait_strategy(self):
        delay = self.options.backoff.delay_ms / 1000
        if self.options.backoff.type == "fixed":
            return wait_fixed(delay)
        return wait_exponential(multiplier=delay, max=max(delay, 60))

    async def _invoke(self, task: ScrapingTask) -> Any:
        timeout = self.options.timeout_ms / 1000
        try:
            return await asyncio.wait_for(self._processor(task), timeout=timeout)
        except asyncio.TimeoutError:
            raise TimeoutError(f"Task timed out after {self.options.timeout_ms} ms") from None

    async def _run(self, task: ScrapingTask) -> None:
        await self._limiter.acquire()
        started = time.monotonic()
        total = self.options.retries + 1
        attempts = 0

        def _before_sleep(state: RetryCallState) -> None:
            self._delayed.add(task.id)
            logger.warning(
                "Task attempt %d/%d failed – %s",
                state.attempt_number,
                total,
                state.outcome.exception(),
                extra={"task_id": task.id, "url": task.url, "retries_left": total - state.attempt_number},
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(total),
            wait=self._wait_strategy(),
            before_sleep=_before_sleep,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    self._delayed.discard(task.id)
                    attempts = attempt.retry_state.attempt_number
                    data = await self._invoke(task)
        except Exception as exc:
            self._delayed.discard(task.id)
            duration_ms = (time.monotonic() - started) * 1000
            result = TaskResult(
                task_id=task.id,
                url=task.url,
                success=False,
                error=str(exc) or exc.__class__.__name__,
                duration_ms=duration_ms,
                metadata=task.metadata,
            )
            logger.error(
                "Task failed after %d attempts",
                attempts,
                extra={"task_id": task.id, "url": task.url, "error": result.error},
            )
            await self._publish(result)
            await self.store.fail(result, attempts)
            await self.store.prune(FAILED, self.options.keep_failed)
            return

        duration_ms = (time.monotonic() - started) * 1000
        result = TaskResult(
            task_id=task.id,
            url=task.url,
            success=True,
            data=data,
            duration_ms=duration_ms,
            metadata=task.metadata,
        )
        logger.info(
            "Task completed successfully in %dms",
            duration_ms,
            extra={"task_id": task.id, "url": task.url},
        )
        await self._publish(result)
        await self.store.complete(result, attempts)
        await self.store.prune(COMPLETED, self.options.keep_completed)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    async def stats(self) -> QueueStats:
        await self.open()
        counts = await self.store.counts()
        delayed = len(self._delayed)
        return QueueStats(
            waiting=counts[WAITING],
            active=max(0, counts[ACTIVE] - delayed),
            completed=counts[COMPLETED],
            failed=counts[FAILED],
            delayed=delayed,
        )

    async def clear(self) -> int:
        """Discard every task record of this queue, pending or finished."""
        await self.open()
        removed = await self.store.clear()
        self._delayed.clear()
        logger.info("Cleared %d tasks from queue %s", removed, self.options.queue_name)
        return removed
