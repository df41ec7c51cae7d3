"""
Tests for aidwatch/services/ingestion.py - the synchronous receipt gateway.
"""
import json
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select

from aidwatch.models.ingestion_endpoint import IngestionEndpoint
from aidwatch.models.webhook_event import WebhookEvent
from aidwatch.services.ingestion import (
    EndpointInactiveError,
    EndpointNotFoundError,
    InvalidPayloadError,
    InvalidSignatureError,
    receive,
)
from aidwatch.utils.webhook_signatures import compute_payload_hash, compute_signature

from factories import make_endpoint

BODY = json.dumps({"title": "Flooding in Jonglei", "description": "Heavy rains..."}).encode()


async def _add_endpoint(db, **overrides) -> IngestionEndpoint:
    endpoint = make_endpoint(**overrides)
    db.add(endpoint)
    await db.commit()
    return endpoint


async def _webhook_event_count(db) -> int:
    return await db.scalar(select(func.count(WebhookEvent.id)))


class TestReceiveAccepted:
    async def test_signed_payload_stored_pending(self, db):
        endpoint = await _add_endpoint(db)
        headers = {
            "Content-Type": "application/json",
            "X-Webhook-Signature": compute_signature(endpoint.secret, BODY),
        }

        receipt = await receive(db, endpoint.path, BODY, headers, correlation_id="cid-123")

        assert receipt.accepted is True
        stored = await db.get(WebhookEvent, receipt.event_id)
        assert stored.status == "PENDING"
        assert stored.payload == {"title": "Flooding in Jonglei", "description": "Heavy rains..."}
        assert stored.payload_hash == compute_payload_hash(BODY)
        assert stored.correlation_id == "cid-123"
        assert stored.event_id is None

    async def test_hub_style_signature(self, db):
        endpoint = await _add_endpoint(db)
        headers = {"X-Hub-Signature-256": "sha256=" + compute_signature(endpoint.secret, BODY)}

        receipt = await receive(db, endpoint.path, BODY, headers)

        assert receipt.accepted is True

    async def test_unsigned_payload_accepted(self, db):
        endpoint = await _add_endpoint(db)

        receipt = await receive(db, endpoint.path, BODY, {"content-type": "application/json"})

        assert receipt.accepted is True
        assert await _webhook_event_count(db) == 1

    async def test_counters_updated(self, db):
        endpoint = await _add_endpoint(db)

        await receive(db, endpoint.path, BODY, {})
        await receive(db, endpoint.path, BODY, {})

        await db.refresh(endpoint)
        assert endpoint.total_received == 2
        assert endpoint.last_received_at is not None

    async def test_replay_creates_second_row(self, db):
        endpoint = await _add_endpoint(db)
        headers = {"X-Webhook-Signature": compute_signature(endpoint.secret, BODY)}

        first = await receive(db, endpoint.path, BODY, headers)
        second = await receive(db, endpoint.path, BODY, headers)

        assert first.event_id != second.event_id
        assert await _webhook_event_count(db) == 2

    async def test_sensitive_headers_not_stored(self, db):
        endpoint = await _add_endpoint(db)
        headers = {"Authorization": "Bearer abc", "Cookie": "s=1", "User-Agent": "GDACS/1.0"}

        receipt = await receive(db, endpoint.path, BODY, headers)

        stored = await db.get(WebhookEvent, receipt.event_id)
        assert stored.headers == {"user-agent": "GDACS/1.0"}

    async def test_json_array_accepted(self, db):
        endpoint = await _add_endpoint(db)

        receipt = await receive(db, endpoint.path, b'[{"title": "a"}]', {})

        stored = await db.get(WebhookEvent, receipt.event_id)
        assert stored.payload == [{"title": "a"}]


class TestReceiveRejected:
    async def test_unknown_path(self, db):
        with pytest.raises(EndpointNotFoundError) as exc:
            await receive(db, "wh_doesnotexist", BODY, {})
        assert exc.value.status_code == 404

    async def test_inactive_endpoint(self, db):
        endpoint = await _add_endpoint(db, is_active=False)
        with pytest.raises(EndpointInactiveError) as exc:
            await receive(db, endpoint.path, BODY, {})
        assert exc.value.status_code == 403
        assert await _webhook_event_count(db) == 0

    async def test_tampered_body_rejected(self, db):
        endpoint = await _add_endpoint(db)
        headers = {"X-Webhook-Signature": compute_signature(endpoint.secret, BODY)}
        tampered = BODY.replace(b"Jonglei", b"Juba")

        with patch("aidwatch.services.ingestion.send_alert", new_callable=AsyncMock) as mock_alert:
            with pytest.raises(InvalidSignatureError) as exc:
                await receive(db, endpoint.path, tampered, headers)

        assert exc.value.status_code == 401
        mock_alert.assert_awaited_once()
        assert await _webhook_event_count(db) == 0
        await db.refresh(endpoint)
        assert endpoint.total_received == 0

    async def test_signature_from_rotated_secret_rejected(self, db):
        endpoint = await _add_endpoint(db)
        headers = {"X-Webhook-Signature": compute_signature("whsec_previous", BODY)}

        with patch("aidwatch.services.ingestion.send_alert", new_callable=AsyncMock):
            with pytest.raises(InvalidSignatureError):
                await receive(db, endpoint.path, BODY, headers)

    async def test_non_ascii_signature_header_rejected(self, db):
        endpoint = await _add_endpoint(db)

        with patch("aidwatch.services.ingestion.send_alert", new_callable=AsyncMock):
            with pytest.raises(InvalidSignatureError) as exc:
                await receive(db, endpoint.path, BODY, {"X-Webhook-Signature": "\u00e9"})

        assert exc.value.status_code == 401
        assert await _webhook_event_count(db) == 0

    async def test_non_json_body(self, db):
        endpoint = await _add_endpoint(db)
        with pytest.raises(InvalidPayloadError) as exc:
            await receive(db, endpoint.path, b"title=Flooding", {})
        assert exc.value.status_code == 400
        assert await _webhook_event_count(db) == 0

    async def test_invalid_utf8_body(self, db):
        endpoint = await _add_endpoint(db)
        with pytest.raises(InvalidPayloadError):
            await receive(db, endpoint.path, b"\xff\xfe\x00", {})
