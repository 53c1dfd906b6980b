"""
Async queues feeding workflow instances to a bounded pool of workers.

Reviews and indexing runs get separate queues and worker pools. The review
pool size caps simultaneous generative-model calls system-wide; steps inside
one instance always run sequentially.
"""
import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Set, Union

from ..config import settings
from ..review.models import RepositoryConnected, ReviewRequest
from .runtime import StepStore

logger = logging.getLogger("review.queue")

Job = Union[ReviewRequest, RepositoryConnected]
Handler = Callable[[Job], Awaitable[object]]

_JOB_TYPES = {
    "review": ReviewRequest,
    "indexing": RepositoryConnected,
}


class WorkflowQueue:
    """A FIFO queue of workflow jobs with a fixed-size worker pool."""

    def __init__(self, name: str, handler: Handler, concurrency: int):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.name = name
        self._handler = handler
        self._concurrency = concurrency
        self._queue: asyncio.Queue = asyncio.Queue()
        self._workers: List[asyncio.Task] = []
        # Instance ids currently queued or being handled
        self._inflight: Set[str] = set()

    async def enqueue(self, job: Job) -> int:
        """
        Add a job to the queue. Returns current queue size.

        A job whose instance is already queued or running is dropped.
        """
        if job.instance_id in self._inflight:
            qsize = self._queue.qsize()
            logger.info(f"[{self.name}] job already in flight, dropped: {job.instance_id}")
            return qsize
        self._inflight.add(job.instance_id)
        await self._queue.put(job)
        qsize = self._queue.qsize()
        logger.info(f"[{self.name}] job enqueued: {job.instance_id} (queue size: {qsize})")
        return qsize

    def qsize(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return any(not w.done() for w in self._workers)

    def start(self) -> None:
        if self.running:
            return
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"{self.name}-worker-{i}")
            for i in range(self._concurrency)
        ]
        logger.info(f"[{self.name}] started {self._concurrency} worker(s)")

    async def join(self) -> None:
        """Wait until every enqueued job has been processed."""
        await self._queue.join()

    async def stop(self) -> None:
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info(f"[{self.name}] stopped")

    async def _worker(self, index: int) -> None:
        while True:
            job = await self._queue.get()
            try:
                logger.info(f"[{self.name}-{index}] processing {job.instance_id}")
                outcome = await self._handler(job)
                logger.info(f"[{self.name}-{index}] finished {job.instance_id}: {outcome}")
            except asyncio.CancelledError:
                logger.info(f"[{self.name}-{index}] cancelled")
                raise
            except Exception:
                # Workflows record their own failures; never let one job kill the worker
                logger.exception(f"[{self.name}-{index}] unexpected error in {job.instance_id}")
            finally:
                self._inflight.discard(job.instance_id)
                self._queue.task_done()


class WorkflowDispatcher:
    """
    Routes trigger events to the review or indexing queue.
    """

    def __init__(
        self,
        review_handler: Handler,
        indexing_handler: Handler,
        review_concurrency: Optional[int] = None,
        indexing_concurrency: Optional[int] = None,
    ):
        self.reviews = WorkflowQueue(
            "reviews",
            review_handler,
            review_concurrency or settings.review_concurrency,
        )
        self.indexing = WorkflowQueue(
            "indexing",
            indexing_handler,
            indexing_concurrency or settings.indexing_concurrency,
        )

    async def dispatch(self, job: Job) -> int:
        if isinstance(job, ReviewRequest):
            return await self.reviews.enqueue(job)
        if isinstance(job, RepositoryConnected):
            return await self.indexing.enqueue(job)
        raise TypeError(f"Unsupported job type: {type(job).__name__}")

    async def recover(self, store: StepStore) -> int:
        """
        Re-enqueue every instance that never reached a terminal state.

        Returns the number of recovered instances.
        """
        recovered = 0
        for kind, payload in await store.list_incomplete():
            job_type = _JOB_TYPES.get(kind)
            if job_type is None:
                logger.warning(f"Skipping unknown workflow kind '{kind}' during recovery")
                continue
            await self.dispatch(job_type.model_validate(payload))
            recovered += 1
        if recovered:
            logger.info(f"Recovered {recovered} interrupted workflow instance(s)")
        return recovered

    def start(self) -> None:
        self.reviews.start()
        self.indexing.start()

    async def stop(self) -> None:
        await self.reviews.stop()
        await self.indexing.stop()
