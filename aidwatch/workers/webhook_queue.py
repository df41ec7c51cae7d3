"""
Webhook processing queue - fire-and-forget hand-off from the receipt route.

submit() never blocks the caller. A fixed pool of consumer tasks pulls
WebhookEvent ids and runs them through process_webhook_event one at a time
per consumer. Each item runs inside its own error boundary so one bad payload
cannot kill a consumer. Items still queued at shutdown stay PENDING in the
database and are picked up by the ingestion sweep.
"""
import asyncio
import logging
import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from aidwatch.services.correlation import CorrelationEngine
from aidwatch.services.webhook_processing import process_webhook_event
from aidwatch.utils.logging import set_correlation_id

logger = logging.getLogger(__name__)


class WebhookProcessingQueue:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        engine: CorrelationEngine,
        workers: int = 1,
        maxsize: int = 1000,
    ):
        self.session_factory = session_factory
        self.engine = engine
        self.worker_count = max(workers, 1)
        self._queue: asyncio.Queue[tuple[uuid.UUID, Optional[str]]] = asyncio.Queue(maxsize=maxsize)
        self._tasks: list[asyncio.Task] = []
        self.processed = 0
        self.dropped = 0

    @property
    def depth(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    def submit(self, webhook_event_id: uuid.UUID, correlation_id: Optional[str] = None) -> bool:
        """
        Enqueue without waiting. Returns False when the queue is full; the
        WebhookEvent stays PENDING and the ingestion sweep recovers it.
        """
        try:
            self._queue.put_nowait((webhook_event_id, correlation_id))
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                "Webhook queue full (%d); leaving event for the ingestion sweep", self.depth,
                extra={"webhook_event_id": str(webhook_event_id)},
            )
            return False

    def start(self) -> None:
        if self.running:
            return
        self._tasks = [
            asyncio.create_task(self._consume(i), name=f"webhook-consumer-{i}")
            for i in range(self.worker_count)
        ]
        logger.info("Webhook processing queue started with %d consumer(s)", self.worker_count)

    async def stop(self, timeout: float = 10.0) -> None:
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.wait(self._tasks, timeout=timeout)
        self._tasks = []
        logger.info("Webhook processing queue stopped (%d still queued)", self.depth)

    async def join(self) -> None:
        """Wait until every submitted item has been processed."""
        await self._queue.join()

    async def _consume(self, index: int) -> None:
        while True:
            webhook_event_id, correlation_id = await self._queue.get()
            try:
                set_correlation_id(correlation_id)
                await process_webhook_event(self.session_factory, webhook_event_id, self.engine)
                self.processed += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    "Webhook consumer %d error: %s", index, str(e), exc_info=True,
                    extra={"webhook_event_id": str(webhook_event_id)},
                )
            finally:
                set_correlation_id(None)
                self._queue.task_done()
