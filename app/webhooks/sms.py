"""
Inbound SMS webhook
"""

from typing import Any, Dict, Optional

import structlog
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError

from ..database.crud import InteractionCRUD
from ..database.init_db import DatabaseManager
from ..database.models import Direction, Interaction
from ..inbox.contact_points import ContactPointResolver
from ..utils.helpers import normalize_phone, parse_timestamp

logger = structlog.get_logger("inbox.webhooks.sms")


class SmsWebhook(BaseModel):
    from_number: str
    to_number: Optional[str] = None
    body: str = ""
    message_id: Optional[str] = None
    timestamp: Optional[str] = None


class SmsWebhookHandler:
    """Store inbound text messages in the interaction feed"""

    def __init__(self, db: DatabaseManager, resolver: Optional[ContactPointResolver] = None):
        self.db = db
        self.resolver = resolver or ContactPointResolver(db)

    async def handle(self, webhook: SmsWebhook, merchant_id: str) -> Dict[str, Any]:
        """
        Store one inbound message.

        Provider redelivery of an already stored message_id is acknowledged
        without a second write.
        """
        if webhook.message_id:
            async with self.db.get_session() as session:
                existing = await InteractionCRUD.get_interaction(session, webhook.message_id)
            if existing is not None:
                return self._redelivered(existing, merchant_id)

        contact_point = normalize_phone(webhook.from_number)
        customer_id = await self.resolver.resolve(merchant_id, contact_point, source="sms")

        async with self.db.get_session() as session:
            try:
                interaction = await InteractionCRUD.create_interaction(
                    session,
                    merchant_id=merchant_id,
                    contact_point=contact_point,
                    channel="sms",
                    direction=Direction.INBOUND.value,
                    content=webhook.body,
                    customer_id=customer_id,
                    interaction_id=webhook.message_id,
                    created_at=parse_timestamp(webhook.timestamp)
                )
            except IntegrityError:
                # A concurrent delivery of the same message won the insert
                await session.rollback()
                existing = await InteractionCRUD.get_interaction(session, webhook.message_id)
                if existing is None:
                    raise
                return self._redelivered(existing, merchant_id)

        logger.info(
            "Inbound SMS stored",
            merchant_id=merchant_id,
            interaction_id=interaction.id,
            customer_id=customer_id
        )
        return {"status": "ok", "interaction_id": interaction.id, "customer_id": customer_id}

    @staticmethod
    def _redelivered(existing: Interaction, merchant_id: str) -> Dict[str, Any]:
        if existing.merchant_id != merchant_id:
            logger.warning(
                "SMS id belongs to another merchant, ignoring",
                interaction_id=existing.id,
                merchant_id=merchant_id
            )
            return {"status": "ignored", "reason": "merchant_mismatch"}

        logger.info("Duplicate SMS delivery, already stored", interaction_id=existing.id, merchant_id=merchant_id)
        return {
            "status": "ok",
            "interaction_id": existing.id,
            "customer_id": existing.customer_id,
            "duplicate": True,
        }
