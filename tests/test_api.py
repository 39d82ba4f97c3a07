"""
API tests through the ASGI app
"""

from unittest.mock import patch

import httpx
import pytest
import pytest_asyncio

import app.main
from app.analysis.analyzer import get_analyzer
from app.database.crud import CallRecordCRUD, InteractionCRUD
from app.database.init_db import get_db_manager
from app.tasks.queue import SimpleTaskQueue, get_task_queue
from app.webhooks.sms import SmsWebhook, SmsWebhookHandler

PHONE = "+15551234567"


@pytest.fixture
def queue():
    """Queue without workers so enqueued analysis stays observable"""
    return SimpleTaskQueue(max_workers=1, max_queue_size=10)


@pytest_asyncio.fixture
async def client(db, mock_analyzer, queue, monkeypatch):
    fastapi_app = app.main.app
    fastapi_app.dependency_overrides[get_db_manager] = lambda: db
    fastapi_app.dependency_overrides[get_analyzer] = lambda: mock_analyzer
    fastapi_app.dependency_overrides[get_task_queue] = lambda: queue
    monkeypatch.setattr(app.main, "db_manager", db)

    transport = httpx.ASGITransport(app=fastapi_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client

    fastapi_app.dependency_overrides.clear()


def sms(body="Is my car ready?", message_id="SM1", timestamp="2025-03-10T14:00:00Z"):
    return {
        "from_number": "(555) 123-4567",
        "to_number": "+15559990000",
        "body": body,
        "message_id": message_id,
        "timestamp": timestamp,
    }


def call_event(event, **call):
    payload = {"event": event, "call": {"call_id": "call-1", "direction": "inbound",
                                        "from_number": "555-123-4567", "to_number": "+15559990000", **call}}
    return payload


class TestHealth:

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["queue"]["queue_size"] == 0


class TestAnalyzeTranscript:

    @pytest.mark.asyncio
    async def test_empty_transcript_rejected(self, client, mock_analyzer):
        response = await client.post("/api/analyze-transcript", json={"transcript": "   "})

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Transcript is required"
        mock_analyzer.analyze.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_transcript_rejected(self, client):
        response = await client.post("/api/analyze-transcript", json={"callLogId": "call-1"})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_returns_analysis(self, client):
        response = await client.post("/api/analyze-transcript", json={
            "transcript": [{"role": "agent", "content": "Main Street Auto"}, {"role": "user", "content": "Brakes"}],
            "callLogId": "unknown-call",
        })

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["analysis"]["rating"] == 8
        assert data["analysis"]["customer_info"]["vehicle_make"] == "Honda"
        assert data["analysis"]["pipeline"]["deal_value"] == 450
        assert "error" not in data["analysis"]


class TestInbox:

    @pytest.mark.asyncio
    async def test_sms_creates_unread_conversation(self, client):
        response = await client.post("/webhooks/sms", json=sms())
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.json()["interaction_id"] == "SM1"

        response = await client.get("/api/inbox")

        data = response.json()
        assert data["count"] == 1
        conversation = data["conversations"][0]
        assert conversation["customer_phone"] == PHONE
        assert conversation["customer_name"] == "Unknown Caller"
        assert conversation["unread"] is True
        assert conversation["channel"] == "sms"
        assert conversation["preview"] == "Is my car ready?"
        assert conversation["messages"][0]["type"] == "customer"

    @pytest.mark.asyncio
    async def test_get_conversation_by_phone(self, client):
        await client.post("/webhooks/sms", json=sms())

        response = await client.get("/api/inbox/5551234567")

        assert response.status_code == 200
        assert response.json()["customer_phone"] == PHONE

    @pytest.mark.asyncio
    async def test_unknown_conversation_404(self, client):
        response = await client.get("/api/inbox/5550000000")

        assert response.status_code == 404
        assert response.json()["error"]["message"] == "Conversation not found"

    @pytest.mark.asyncio
    async def test_sms_redelivery_acknowledged(self, client):
        """Test: a resent message_id is a success and stores nothing new"""
        first = await client.post("/webhooks/sms", json=sms())
        second = await client.post("/webhooks/sms", json=sms())

        assert second.status_code == 200
        assert second.json()["status"] == "ok"
        assert second.json()["duplicate"] is True
        assert second.json()["interaction_id"] == "SM1"
        assert second.json()["customer_id"] == first.json()["customer_id"]

        inbox = (await client.get("/api/inbox")).json()
        assert len(inbox["conversations"][0]["messages"]) == 1

    @pytest.mark.asyncio
    async def test_sms_concurrent_delivery(self, db):
        """Test: losing the insert race to the same message_id returns the stored row"""
        handler = SmsWebhookHandler(db)
        await handler.handle(SmsWebhook(**sms()), "default")

        lookups = []
        stored_lookup = InteractionCRUD.get_interaction

        async def miss_first(session, interaction_id):
            lookups.append(interaction_id)
            if len(lookups) == 1:
                return None
            return await stored_lookup(session, interaction_id)

        with patch.object(InteractionCRUD, "get_interaction", miss_first):
            result = await handler.handle(SmsWebhook(**sms()), "default")

        assert result["status"] == "ok"
        assert result["duplicate"] is True
        assert lookups == ["SM1", "SM1"]

    @pytest.mark.asyncio
    async def test_merchants_isolated(self, client):
        await client.post("/webhooks/sms", json=sms(), headers={"X-Merchant-Id": "shop-a"})

        own = await client.get("/api/inbox", headers={"X-Merchant-Id": "shop-a"})
        other = await client.get("/api/inbox", headers={"X-Merchant-Id": "shop-b"})

        assert own.json()["count"] == 1
        assert other.json()["count"] == 0


class TestCallWebhooks:

    @pytest.mark.asyncio
    async def test_call_lifecycle(self, client, db, queue):
        """Test: started, ended and analyzed events build one call record"""
        started = await client.post("/webhooks/calls", json=call_event("call_started"))
        assert started.json()["status"] == "ok"
        assert started.json()["analysis_task_id"] is None

        ended = await client.post("/webhooks/calls", json=call_event(
            "call_ended",
            duration_ms=185400,
            transcript="Agent: Hi\nUser: Brakes",
            transcript_object=[{"role": "agent", "content": "Hi"}, {"role": "user", "content": "Brakes"}],
        ))
        assert ended.json()["analysis_task_id"] is not None
        assert queue.qsize() == 1

        analyzed = await client.post("/webhooks/calls", json={
            **call_event("call_analyzed"),
            "call_analysis": {"call_summary": "Customer asked about brakes"},
        })
        assert analyzed.json()["status"] == "ok"

        async with db.get_session() as session:
            call = await CallRecordCRUD.get_call_record(session, "call-1")
        assert call.customer_phone == PHONE
        assert call.duration_seconds == 185
        assert call.status == "completed"
        assert call.transcript[1] == {"role": "user", "content": "Brakes"}
        assert call.summary == "Customer asked about brakes"

        inbox = (await client.get("/api/inbox")).json()
        messages = inbox["conversations"][0]["messages"]
        assert messages[0]["id"] == "call-call-1"
        assert messages[0]["call_summary"] == "Customer asked about brakes"
        assert inbox["conversations"][0]["channel"] == "phone"

    @pytest.mark.asyncio
    async def test_call_owned_by_other_merchant_untouched(self, client, db, queue):
        """Test: a second merchant cannot rewrite or re-analyze another merchant's call"""
        await client.post(
            "/webhooks/calls",
            json=call_event("call_ended", transcript="Agent: Main Street Auto, how can I help?"),
            headers={"X-Merchant-Id": "merchant-a"}
        )

        response = await client.post(
            "/webhooks/calls",
            json=call_event("call_ended", transcript="Injected by another merchant"),
            headers={"X-Merchant-Id": "merchant-b"}
        )
        analyzed = await client.post(
            "/webhooks/calls",
            json={**call_event("call_analyzed"), "call_analysis": {"call_summary": "Overwritten"}},
            headers={"X-Merchant-Id": "merchant-b"}
        )

        assert response.json() == {"status": "ignored", "reason": "merchant_mismatch"}
        assert analyzed.json() == {"status": "ignored", "reason": "merchant_mismatch"}
        assert queue.qsize() == 1
        async with db.get_session() as session:
            call = await CallRecordCRUD.get_call_record(session, "call-1")
        assert call.merchant_id == "merchant-a"
        assert call.transcript == "Agent: Main Street Auto, how can I help?"
        assert call.summary is None
        other = (await client.get("/api/inbox", headers={"X-Merchant-Id": "merchant-b"})).json()
        assert other["count"] == 0

    @pytest.mark.asyncio
    async def test_unsupported_event_ignored(self, client):
        response = await client.post("/webhooks/calls", json=call_event("call_transferred"))

        assert response.json() == {"status": "ignored", "reason": "unsupported_event"}

    @pytest.mark.asyncio
    async def test_missing_call_id_ignored(self, client):
        response = await client.post("/webhooks/calls", json={"event": "call_ended", "call": {}})

        assert response.json() == {"status": "ignored", "reason": "missing_call_id"}
