"""
Voice provider call webhooks
Lifecycle events upsert the call record; a finished call with a transcript
is queued for analysis without waiting for it.
"""

from typing import Any, Dict, List, Optional, Union

import structlog
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError

from ..database.crud import CallRecordCRUD
from ..database.init_db import DatabaseManager
from ..inbox.contact_points import ContactPointResolver
from ..services.call_analysis import CallAnalysisService
from ..tasks.queue import SimpleTaskQueue
from ..tasks.workers import AnalyzeCallTask
from ..utils.helpers import normalize_phone

logger = structlog.get_logger("inbox.webhooks.calls")

CALL_STARTED = "call_started"
CALL_ENDED = "call_ended"
CALL_ANALYZED = "call_analyzed"
CALL_EVENTS = {CALL_STARTED, CALL_ENDED, CALL_ANALYZED}

ANALYSIS_TASK_PRIORITY = 3


class CallPayload(BaseModel):
    call_id: Optional[str] = None
    direction: Optional[str] = None
    from_number: Optional[str] = None
    to_number: Optional[str] = None
    duration_ms: Optional[int] = None
    transcript: Optional[str] = None
    transcript_object: Optional[List[Dict[str, Any]]] = None
    disconnection_reason: Optional[str] = None

    @property
    def customer_phone(self) -> Optional[str]:
        raw = self.to_number if self.direction == "outbound" else self.from_number
        return normalize_phone(raw)

    @property
    def full_transcript(self) -> Union[str, List[Dict[str, Any]], None]:
        """Turn list when available, else the plain text"""
        if self.transcript_object:
            return self.transcript_object
        if self.transcript and self.transcript.strip():
            return self.transcript
        return None


class CallAnalysisPayload(BaseModel):
    call_summary: Optional[str] = None


class CallWebhook(BaseModel):
    event: str
    call: Optional[CallPayload] = None
    call_analysis: Optional[CallAnalysisPayload] = None


class CallWebhookHandler:
    """Handle call lifecycle webhooks for one merchant"""

    def __init__(
        self,
        db: DatabaseManager,
        queue: SimpleTaskQueue,
        analysis_service: CallAnalysisService,
        resolver: Optional[ContactPointResolver] = None
    ):
        self.db = db
        self.queue = queue
        self.analysis_service = analysis_service
        self.resolver = resolver or ContactPointResolver(db)

    async def handle(self, webhook: CallWebhook, merchant_id: str) -> Dict[str, Any]:
        if webhook.event not in CALL_EVENTS:
            logger.info("Ignoring call event", event_type=webhook.event)
            return {"status": "ignored", "reason": "unsupported_event"}

        call = webhook.call
        if call is None or not call.call_id:
            logger.warning("Call webhook without call id", event_type=webhook.event)
            return {"status": "ignored", "reason": "missing_call_id"}

        owner = await self._upsert_call(call, merchant_id)
        if owner != merchant_id:
            logger.warning(
                "Call belongs to another merchant, ignoring",
                event_type=webhook.event,
                call_id=call.call_id,
                merchant_id=merchant_id
            )
            return {"status": "ignored", "reason": "merchant_mismatch"}

        # Secondary step: a missing customer link never fails the webhook
        customer_id = await self.resolver.resolve(merchant_id, call.customer_phone, source="phone")

        updates = self._event_updates(webhook)
        if updates:
            async with self.db.get_session() as session:
                await CallRecordCRUD.update_call_record(session, call.call_id, **updates)

        task_id = None
        if webhook.event == CALL_ENDED and call.full_transcript:
            task_id = await self._enqueue_analysis(call.call_id)

        logger.info(
            "Call webhook processed",
            event_type=webhook.event,
            call_id=call.call_id,
            merchant_id=merchant_id,
            customer_id=customer_id,
            fields=sorted(updates)
        )
        return {
            "status": "ok",
            "event": webhook.event,
            "call_id": call.call_id,
            "customer_id": customer_id,
            "analysis_task_id": task_id,
        }

    async def _upsert_call(self, call: CallPayload, merchant_id: str) -> Optional[str]:
        """Create the call record if missing; returns the merchant that owns it"""
        async with self.db.get_session() as session:
            existing = await CallRecordCRUD.get_call_record(session, call.call_id)
            if existing is not None:
                return existing.merchant_id
            try:
                await CallRecordCRUD.create_call_record(
                    session,
                    call_id=call.call_id,
                    merchant_id=merchant_id,
                    customer_phone=call.customer_phone,
                    direction=call.direction,
                    status="in-progress"
                )
                logger.info("Call record created", call_id=call.call_id, merchant_id=merchant_id)
                return merchant_id
            except IntegrityError:
                # Another event for the same call won the insert
                await session.rollback()
                logger.info("Call record already exists, updating", call_id=call.call_id)
                existing = await CallRecordCRUD.get_call_record(session, call.call_id)
                return existing.merchant_id if existing is not None else None

    @staticmethod
    def _event_updates(webhook: CallWebhook) -> Dict[str, Any]:
        call = webhook.call
        if webhook.event == CALL_ENDED:
            return {
                "duration_seconds": round((call.duration_ms or 0) / 1000),
                "transcript": call.full_transcript,
                "status": call.disconnection_reason or "completed",
            }
        if webhook.event == CALL_ANALYZED and webhook.call_analysis is not None:
            return {"summary": webhook.call_analysis.call_summary or "No summary provided."}
        return {}

    async def _enqueue_analysis(self, call_id: str) -> Optional[str]:
        task = AnalyzeCallTask(call_id, self.analysis_service)
        try:
            return await self.queue.add_task(
                task.execute,
                priority=ANALYSIS_TASK_PRIORITY,
                name=f"analyze_call:{call_id}"
            )
        except RuntimeError as e:
            logger.error("Could not queue call analysis", call_id=call_id, error=str(e))
            return None
