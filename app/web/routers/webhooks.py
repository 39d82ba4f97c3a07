"""
Webhooks Router - voice and SMS provider callbacks
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from ...database.init_db import DatabaseManager, get_db_manager
from ...services.call_analysis import CallAnalysisService
from ...tasks.queue import SimpleTaskQueue, get_task_queue
from ...webhooks.calls import CallWebhook, CallWebhookHandler
from ...webhooks.sms import SmsWebhook, SmsWebhookHandler
from ..dependencies import get_analysis_service, get_merchant_id

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/calls")
async def call_webhook(
    webhook: CallWebhook,
    merchant_id: str = Depends(get_merchant_id),
    db: DatabaseManager = Depends(get_db_manager),
    queue: SimpleTaskQueue = Depends(get_task_queue),
    service: CallAnalysisService = Depends(get_analysis_service)
) -> Dict[str, Any]:
    """Call started / ended / analyzed events"""
    handler = CallWebhookHandler(db, queue, service)
    return await handler.handle(webhook, merchant_id)


@router.post("/sms")
async def sms_webhook(
    webhook: SmsWebhook,
    merchant_id: str = Depends(get_merchant_id),
    db: DatabaseManager = Depends(get_db_manager)
) -> Dict[str, Any]:
    """Inbound text message"""
    handler = SmsWebhookHandler(db)
    return await handler.handle(webhook, merchant_id)
