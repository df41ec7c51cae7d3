"""
Tests for aidwatch/services/summaries.py - LLM situation summaries.
"""
import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select

from aidwatch.models.summary import Summary
from aidwatch.services.summaries import (
    SummaryGenerationError,
    generate_crisis_summary,
    generate_missing_summaries,
)

from factories import make_crisis, make_event


def _ai_response(**overrides) -> dict:
    data = {
        "content": "Flooding in Jonglei has displaced an estimated 40,000 people.",
        "provider": "anthropic",
        "model": "claude-sonnet",
        "latency_ms": 900,
        "cost_usd": 0.01,
        "input_tokens": 400,
        "output_tokens": 120,
        "error": None,
    }
    data.update(overrides)
    return data


@pytest.fixture
def mock_summary_ai():
    with patch(
        "aidwatch.services.summaries.generate_response",
        new_callable=AsyncMock,
        return_value=_ai_response(),
    ) as mock:
        yield mock


async def _summary_count(db) -> int:
    return await db.scalar(select(func.count(Summary.id)))


class TestGenerateCrisisSummary:
    async def test_summary_stored(self, db, mock_summary_ai):
        crisis = make_crisis()
        db.add(crisis)
        db.add(make_event(crisis_id=crisis.id, title="Nile overflows near Bor", analyzed=True))
        await db.commit()

        summary = await generate_crisis_summary(db, crisis.id)

        assert summary.crisis_id == crisis.id
        assert summary.type == "SITUATION"
        assert summary.model == "claude-sonnet"
        assert summary.tokens == 520
        kwargs = mock_summary_ai.call_args.kwargs
        assert kwargs["model_tier"] == "smart"
        assert "Nile overflows near Bor" in kwargs["user_message"]
        assert "Flooding in Jonglei" in kwargs["user_message"]

    async def test_crisis_without_events(self, db, mock_summary_ai):
        crisis = make_crisis()
        db.add(crisis)
        await db.commit()

        await generate_crisis_summary(db, crisis.id)

        assert "No linked reports" in mock_summary_ai.call_args.kwargs["user_message"]

    async def test_missing_crisis(self, db, mock_summary_ai):
        with pytest.raises(SummaryGenerationError, match="not found"):
            await generate_crisis_summary(db, uuid.uuid4())
        mock_summary_ai.assert_not_awaited()

    async def test_provider_error(self, db, mock_summary_ai):
        mock_summary_ai.return_value = _ai_response(content="", error="No AI provider available")
        crisis = make_crisis()
        db.add(crisis)
        await db.commit()

        with pytest.raises(SummaryGenerationError, match="No AI provider"):
            await generate_crisis_summary(db, crisis.id)
        assert await _summary_count(db) == 0


class TestGenerateMissingSummaries:
    async def test_fills_crises_without_summary(self, db, mock_summary_ai):
        with_events = make_crisis()
        without_events = make_crisis(title="Quiet crisis")
        db.add_all([with_events, without_events])
        db.add(make_event(crisis_id=with_events.id, analyzed=True))
        await db.commit()

        stats = await generate_missing_summaries(db, delay_seconds=0)

        assert stats == {"generated": 1, "refreshed": 0, "errors": 0}
        assert await _summary_count(db) == 1

    async def test_resolved_crisis_ignored(self, db, mock_summary_ai):
        crisis = make_crisis(status="RESOLVED")
        db.add(crisis)
        db.add(make_event(crisis_id=crisis.id, analyzed=True))
        await db.commit()

        stats = await generate_missing_summaries(db, delay_seconds=0)

        assert stats["generated"] == 0
        mock_summary_ai.assert_not_awaited()

    async def test_refreshes_old_summary_of_updated_crisis(self, db, mock_summary_ai):
        now = datetime.now(timezone.utc)
        crisis = make_crisis(updated_at=now - timedelta(hours=1))
        db.add(crisis)
        db.add(make_event(crisis_id=crisis.id, analyzed=True))
        db.add(Summary(crisis_id=crisis.id, content="Old overview", created_at=now - timedelta(days=2)))
        await db.commit()

        stats = await generate_missing_summaries(db, delay_seconds=0)

        assert stats["refreshed"] == 1
        assert await _summary_count(db) == 2

    async def test_recent_summary_not_refreshed(self, db, mock_summary_ai):
        now = datetime.now(timezone.utc)
        crisis = make_crisis()
        db.add(crisis)
        db.add(make_event(crisis_id=crisis.id, analyzed=True))
        db.add(Summary(crisis_id=crisis.id, content="Fresh overview", created_at=now - timedelta(hours=2)))
        await db.commit()

        stats = await generate_missing_summaries(db, delay_seconds=0)

        assert stats == {"generated": 0, "refreshed": 0, "errors": 0}

    async def test_errors_counted_and_batch_continues(self, db, mock_summary_ai):
        mock_summary_ai.side_effect = [
            _ai_response(content="", error="rate limited"),
            _ai_response(),
        ]
        first = make_crisis(title="Crisis A")
        second = make_crisis(title="Crisis B")
        db.add_all([first, second])
        db.add_all([
            make_event(crisis_id=first.id, analyzed=True),
            make_event(crisis_id=second.id, analyzed=True),
        ])
        await db.commit()

        stats = await generate_missing_summaries(db, delay_seconds=0)

        assert stats["generated"] == 1
        assert stats["errors"] == 1
