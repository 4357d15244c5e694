"""
JobOrchestrator -- bounded worker pool with an admission deadline.

A fixed number of worker tasks pull items from an asyncio.Queue. Each item
is claimed by exactly one worker. The deadline is checked before a worker
claims its next item; a job already running is never interrupted, it just
finishes late. Items still queued when the deadline passes are abandoned.

Groups run as separate batches: one batch is fully drained before the
next one is admitted.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, List, Optional, Sequence, Tuple, TypeVar

from .errors import DeadlineExceeded
from .logging import get_logger, TimedOperation

logger = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class Deadline:
    """Absolute cutoff ``max_run_minutes`` after construction."""

    def __init__(self, max_run_minutes: float, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.expires_at = clock() + max_run_minutes * 60

    @property
    def remaining(self) -> float:
        return max(self.expires_at - self._clock(), 0.0)

    def expired(self) -> bool:
        return self._clock() >= self.expires_at

    def check(self):
        """Raise DeadlineExceeded once the cutoff has passed."""
        if self.expired():
            raise DeadlineExceeded(
                f"run deadline passed {self._clock() - self.expires_at:.0f}s ago, no new jobs admitted"
            )


@dataclass
class BatchOutcome(Generic[T, R]):
    label: str
    results: List[R] = field(default_factory=list)
    errors: List[Tuple[T, BaseException]] = field(default_factory=list)
    abandoned: List[T] = field(default_factory=list)
    deadline_reached: bool = False
    duration_ms: Optional[float] = None


class JobOrchestrator:

    def __init__(self, max_concurrent_jobs: int, deadline: Deadline):
        if max_concurrent_jobs < 1:
            raise ValueError("max_concurrent_jobs must be at least 1")
        self.max_concurrent_jobs = max_concurrent_jobs
        self.deadline = deadline

    async def run_batch(
        self,
        items: Sequence[T],
        job: Callable[[T], Awaitable[R]],
        label: str = "batch",
    ) -> BatchOutcome:
        """
        Run ``job`` over ``items`` with at most ``max_concurrent_jobs`` in
        flight and wait for every admitted job to finish.

        A job that raises is recorded in ``errors``; siblings keep running.
        """
        outcome = BatchOutcome(label=label)
        total = len(items)
        if not total:
            return outcome
        with TimedOperation(logger, f"batch:{label}", group=label) as timer:
            queue: asyncio.Queue = asyncio.Queue()
            for item in items:
                queue.put_nowait(item)

            active = 0
            done = 0

            async def worker(worker_id: int):
                nonlocal active, done
                while True:
                    if queue.empty():
                        return
                    try:
                        self.deadline.check()
                    except DeadlineExceeded as e:
                        if not outcome.deadline_reached:
                            logger.warning(f"[{label}] {e}", extra={"group": label})
                        outcome.deadline_reached = True
                        return
                    item = queue.get_nowait()

                    active += 1
                    try:
                        outcome.results.append(await job(item))
                    except Exception as e:
                        logger.error(
                            f"[{label}] worker {worker_id}: job for {item!r} raised {type(e).__name__}: {e}",
                            extra={"group": label, "error_type": type(e).__name__},
                            exc_info=True,
                        )
                        outcome.errors.append((item, e))
                    finally:
                        active -= 1
                        done += 1
                        queue.task_done()
                        self._log_progress(label, done, total, active, queue.qsize())

            workers = [
                asyncio.create_task(worker(i), name=f"{label}-worker-{i}")
                for i in range(min(self.max_concurrent_jobs, total))
            ]
            await asyncio.gather(*workers)

            while not queue.empty():
                outcome.abandoned.append(queue.get_nowait())
        outcome.duration_ms = timer.duration_ms
        if outcome.abandoned:
            logger.warning(
                f"[{label}] Deadline reached, {len(outcome.abandoned)} queued job(s) abandoned",
                extra={"group": label},
            )
        return outcome

    async def run_groups(
        self,
        batches: Sequence[Tuple[str, Sequence[T]]],
        job: Callable[[str, T], Awaitable[R]],
    ) -> List[BatchOutcome]:
        """Run each (label, items) batch to completion, one after another."""
        outcomes = []
        for label, items in batches:

            async def bound(item: Any, _label: str = label):
                return await job(_label, item)

            outcomes.append(await self.run_batch(items, bound, label=label))
        return outcomes

    def _log_progress(self, label: str, done: int, total: int, active: int, queued: int):
        pct = round(done * 100 / total)
        logger.info(
            f"[{label}] Progress: {pct}% ({done}/{total}) active={active} queued={queued}",
            extra={"group": label},
        )
