"""
Tests for aidwatch/workers/webhook_queue.py - the fire-and-forget consumer pool.
"""
import asyncio
import uuid
from unittest.mock import AsyncMock, MagicMock, patch

from aidwatch.workers.webhook_queue import WebhookProcessingQueue


def _queue(**kwargs) -> WebhookProcessingQueue:
    return WebhookProcessingQueue(MagicMock(), MagicMock(), **kwargs)


class TestSubmit:
    def test_submit_does_not_block(self):
        queue = _queue()
        assert queue.submit(uuid.uuid4(), "cid-1") is True
        assert queue.depth == 1

    def test_full_queue_drops(self):
        queue = _queue(maxsize=1)
        queue.submit(uuid.uuid4())

        assert queue.submit(uuid.uuid4()) is False
        assert queue.dropped == 1
        assert queue.depth == 1


class TestConsumers:
    async def test_items_processed(self):
        queue = _queue(workers=2)
        ids = [uuid.uuid4() for _ in range(3)]
        with patch(
            "aidwatch.workers.webhook_queue.process_webhook_event",
            new_callable=AsyncMock,
            return_value="SUCCESS",
        ) as mock_process:
            queue.start()
            for webhook_event_id in ids:
                queue.submit(webhook_event_id)
            await asyncio.wait_for(queue.join(), timeout=2)
            await queue.stop()

        assert queue.processed == 3
        processed_ids = {c.args[1] for c in mock_process.await_args_list}
        assert processed_ids == set(ids)
        assert queue.running is False

    async def test_one_failure_does_not_kill_consumer(self):
        queue = _queue()
        with patch(
            "aidwatch.workers.webhook_queue.process_webhook_event",
            new_callable=AsyncMock,
            side_effect=[RuntimeError("connection reset"), "SUCCESS"],
        ):
            queue.start()
            queue.submit(uuid.uuid4())
            queue.submit(uuid.uuid4())
            await asyncio.wait_for(queue.join(), timeout=2)
            assert queue.running is True
            await queue.stop()

        assert queue.processed == 1

    async def test_correlation_id_set_while_processing(self):
        queue = _queue()
        seen = []

        async def capture(*args):
            from aidwatch.utils.logging import get_correlation_id
            seen.append(get_correlation_id())
            return "SUCCESS"

        with patch("aidwatch.workers.webhook_queue.process_webhook_event", side_effect=capture):
            queue.start()
            queue.submit(uuid.uuid4(), "cid-abc")
            await asyncio.wait_for(queue.join(), timeout=2)
            await queue.stop()

        assert seen == ["cid-abc"]

    async def test_start_is_idempotent(self):
        queue = _queue(workers=2)
        queue.start()
        tasks = list(queue._tasks)
        queue.start()
        assert queue._tasks == tasks
        await queue.stop()
