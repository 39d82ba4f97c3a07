"""
Inbox feed
Loads one merchant's raw rows and turns them into conversation views
"""

from typing import List, Optional

import structlog

from ..config import Settings, get_settings
from ..database.crud import (
    CustomerCRUD, InteractionCRUD, CallRecordCRUD, TicketCRUD, DealCRUD
)
from ..database.init_db import DatabaseManager
from ..utils.helpers import normalize_phone
from .assembler import ConversationAssembler, ConversationView
from .timeline import TimelineBuilder

logger = structlog.get_logger("inbox.feed")


class InboxFeed:
    """Unified inbox read path"""

    def __init__(self, db: DatabaseManager, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()
        self.timeline = TimelineBuilder(agent_name=self.settings.agent_display_name)

    async def list_conversations(self, merchant_id: str) -> List[ConversationView]:
        """Build every conversation of a merchant, most recent first"""
        # One session, one query per table, issued in order
        async with self.db.get_session() as session:
            customers = await CustomerCRUD.get_merchant_customers(session, merchant_id)
            interactions = await InteractionCRUD.get_merchant_interactions(
                session, merchant_id, limit=self.settings.inbox_message_limit
            )
            call_records = await CallRecordCRUD.get_merchant_call_records(
                session, merchant_id, limit=self.settings.inbox_call_limit
            )
            tickets = await TicketCRUD.get_merchant_tickets(session, merchant_id)
            deals = await DealCRUD.get_merchant_deals(session, merchant_id)

        customer_ids = {}
        customer_names = {}
        for customer in customers:
            phone = normalize_phone(customer.phone_number)
            if phone and phone not in customer_ids:
                customer_ids[phone] = customer.id
                customer_names[phone] = customer.full_name

        threads = self.timeline.build(
            interactions,
            call_records,
            customer_ids=customer_ids,
            customer_names=customer_names
        )
        assembler = ConversationAssembler(customers=customers, tickets=tickets, deals=deals)
        conversations = assembler.assemble_all(threads)

        logger.info(
            "Inbox built",
            merchant_id=merchant_id,
            conversations=len(conversations),
            interactions=len(interactions),
            call_records=len(call_records)
        )
        return conversations

    async def get_conversation(self, merchant_id: str, phone: str) -> Optional[ConversationView]:
        """Single conversation by contact point, None if there is no activity"""
        contact_point = normalize_phone(phone)
        if not contact_point:
            return None

        for conversation in await self.list_conversations(merchant_id):
            if conversation.customer_phone == contact_point:
                return conversation
        return None
