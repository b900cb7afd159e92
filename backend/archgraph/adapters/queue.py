"""
Queue adapters for queue nodes.

`InMemoryQueueAdapter` processes jobs synchronously as soon as a worker is
registered. `RedisQueueAdapter` pushes jobs onto Redis lists and consumes
them in background tasks (or in the standalone `archgraph.worker`), so
its `drain()` always reports 0.
"""

import asyncio
import json
import logging
import uuid
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Deque, Dict, Optional

import redis.asyncio as redis

from archgraph.config import RuntimeSettings

logger = logging.getLogger(__name__)

QueueHandler = Callable[[Dict[str, Any]], Awaitable[None]]

REDIS_KEY_PREFIX = "archgraph:queue:"


@dataclass(frozen=True)
class QueueJobResult:
    job_id: str


@dataclass
class QueueJob:
    id: str
    payload: Dict[str, Any]


class QueueAdapter(ABC):
    kind: str

    @abstractmethod
    async def enqueue(self, queue_name: str, payload: Dict[str, Any]) -> QueueJobResult:
        pass

    @abstractmethod
    async def register_worker(self, queue_name: str, handler: QueueHandler) -> None:
        pass

    @abstractmethod
    async def drain(self, queue_name: str) -> int:
        """Process queued jobs now, if the backend can; return how many ran."""

    async def close(self) -> None:
        pass


@dataclass
class _InMemoryQueue:
    jobs: Deque[QueueJob] = field(default_factory=deque)
    worker: Optional[QueueHandler] = None


class InMemoryQueueAdapter(QueueAdapter):
    kind = "mock"

    def __init__(self):
        self._queues: Dict[str, _InMemoryQueue] = {}

    def _queue(self, queue_name: str) -> _InMemoryQueue:
        if queue_name not in self._queues:
            self._queues[queue_name] = _InMemoryQueue()
        return self._queues[queue_name]

    def pending(self, queue_name: str) -> int:
        return len(self._queue(queue_name).jobs)

    async def enqueue(self, queue_name: str, payload: Dict[str, Any]) -> QueueJobResult:
        state = self._queue(queue_name)
        job = QueueJob(id=uuid.uuid4().hex, payload=payload)
        state.jobs.append(job)

        if state.worker is not None:
            await self._process(queue_name, state)

        return QueueJobResult(job_id=job.id)

    async def register_worker(self, queue_name: str, handler: QueueHandler) -> None:
        self._queue(queue_name).worker = handler

    async def drain(self, queue_name: str) -> int:
        state = self._queue(queue_name)
        if state.worker is None:
            return 0
        return await self._process(queue_name, state)

    async def _process(self, queue_name: str, state: _InMemoryQueue) -> int:
        processed = 0
        while state.jobs and state.worker is not None:
            job = state.jobs.popleft()
            try:
                await state.worker(job.payload)
            except Exception:
                logger.exception('Worker failed for queue "%s" job "%s"', queue_name, job.id)
            processed += 1
        return processed


class RedisQueueAdapter(QueueAdapter):
    kind = "redis"

    def __init__(self, redis_url: str, poll_timeout: int = 1):
        self.redis_url = redis_url
        self.poll_timeout = poll_timeout
        self._client = redis.from_url(redis_url, decode_responses=True)
        self._workers: Dict[str, asyncio.Task] = {}

    @staticmethod
    def key(queue_name: str) -> str:
        return f"{REDIS_KEY_PREFIX}{queue_name}"

    async def enqueue(self, queue_name: str, payload: Dict[str, Any]) -> QueueJobResult:
        job = QueueJob(id=uuid.uuid4().hex, payload=payload)
        await self._client.rpush(
            self.key(queue_name),
            json.dumps({"id": job.id, "payload": job.payload}, default=str),
        )
        return QueueJobResult(job_id=job.id)

    async def register_worker(self, queue_name: str, handler: QueueHandler) -> None:
        running = self._workers.get(queue_name)
        if running is not None and not running.done():
            return
        self._workers[queue_name] = asyncio.create_task(
            self.consume(queue_name, handler),
            name=f"queue-worker:{queue_name}",
        )

    async def drain(self, queue_name: str) -> int:
        # Background workers own processing for this backend
        return 0

    async def consume(
        self,
        queue_name: str,
        handler: QueueHandler,
        stop: Optional[asyncio.Event] = None,
    ) -> None:
        key = self.key(queue_name)
        logger.info('Listening on queue "%s"', queue_name)
        while stop is None or not stop.is_set():
            item = await self._client.blpop([key], timeout=self.poll_timeout)
            if item is None:
                continue
            _, raw = item
            job_id = "unknown"
            try:
                job = json.loads(raw)
                if not isinstance(job, dict):
                    raise ValueError(f"expected a JSON object, got {type(job).__name__}")
                job_id = job.get("id", job_id)
                await handler(job.get("payload") or {})
                logger.info('Processed job %s from "%s"', job_id, queue_name)
            except Exception:
                # Failed jobs are dropped; the consumer keeps running
                logger.exception('Job %s from "%s" failed', job_id, queue_name)

    async def close(self) -> None:
        for task in self._workers.values():
            task.cancel()
        try:
            for queue_name, task in self._workers.items():
                try:
                    await task
                except asyncio.CancelledError:
                    pass
                except Exception:
                    logger.exception('Worker for queue "%s" had stopped with an error', queue_name)
        finally:
            self._workers.clear()
            await self._client.aclose()


def create_queue_adapter(settings: Optional[RuntimeSettings] = None) -> QueueAdapter:
    settings = settings or RuntimeSettings.from_env()
    if settings.uses_in_memory_queue:
        return InMemoryQueueAdapter()
    return RedisQueueAdapter(settings.redis_url)
