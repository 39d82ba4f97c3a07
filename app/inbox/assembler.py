"""
Conversation assembly
Attaches ticket, deal and customer metadata to reconciled threads and
projects them into the inbox view. Pure: no I/O, no mutation of inputs.
"""

from collections import Counter
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from ..utils.helpers import normalize_phone, truncate_text
from .contact_points import UNKNOWN_CALLER
from .timeline import ConversationThread, EntryType, TimelineEntry

CLOSED_TICKET_STATUSES = {"resolved", "closed"}


@dataclass(frozen=True)
class ConversationView:
    """Inbox projection of one conversation thread"""
    id: str
    customer_id: Optional[str]
    customer_name: str
    customer_phone: str
    messages: List[TimelineEntry]
    channel: str
    status: str
    priority: str
    unread: bool
    last_message_at: Optional[datetime]
    preview: str
    tags: List[str]
    vehicle: Optional[Dict[str, Any]] = None
    ticket: Optional[Dict[str, Any]] = None
    deal: Optional[Dict[str, Any]] = None
    ltv: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "vehicle": self.vehicle,
            "messages": [m.to_dict() for m in self.messages],
            "ticket": self.ticket,
            "deal": self.deal,
            "tags": list(self.tags),
            "channel": self.channel,
            "status": self.status,
            "priority": self.priority,
            "preview": self.preview,
            "last_message_at": self.last_message_at.isoformat() if self.last_message_at else None,
            "unread": self.unread,
            "ltv": self.ltv,
        }


def primary_channel(thread: ConversationThread) -> str:
    """Phone wins over sms; otherwise the most used channel"""
    if "phone" in thread.channels:
        return "phone"
    if "sms" in thread.channels:
        return "sms"
    counts = Counter(e.channel for e in thread.entries if e.channel)
    if not counts:
        return "sms"
    return counts.most_common(1)[0][0]


def is_unread(thread: ConversationThread) -> bool:
    last = thread.last_entry
    return last is not None and last.type == EntryType.CUSTOMER


def ticket_status(ticket: Any) -> str:
    if ticket is None:
        return "open"
    if ticket.priority == "urgent":
        return "urgent"
    if ticket.status in CLOSED_TICKET_STATUSES:
        return "resolved"
    if ticket.status == "pending":
        return "waiting"
    return "open"


def _ticket_dict(ticket: Any) -> Dict[str, Any]:
    return {
        "id": ticket.id,
        "status": ticket.status,
        "priority": ticket.priority,
        "title": ticket.title,
    }


def _deal_dict(deal: Any) -> Dict[str, Any]:
    return {
        "id": deal.id,
        "title": deal.title,
        "status": deal.status,
        "value": deal.value,
        "priority": deal.priority,
    }


def _vehicle(ticket: Any, customer: Any) -> Optional[Dict[str, Any]]:
    if ticket is not None and ticket.vehicle_year:
        return {
            "year": ticket.vehicle_year,
            "make": ticket.vehicle_make,
            "model": ticket.vehicle_model,
            "color": ticket.vehicle_color,
            "vin": ticket.vehicle_vin,
        }
    if customer is not None and (customer.vehicle_year or customer.vehicle_make or customer.vehicle_model):
        return {
            "year": customer.vehicle_year,
            "make": customer.vehicle_make,
            "model": customer.vehicle_model,
        }
    return None


class ConversationAssembler:
    """Project threads into inbox views using lookup tables"""

    def __init__(
        self,
        customers: Iterable[Any] = (),
        tickets: Iterable[Any] = (),
        deals: Iterable[Any] = ()
    ):
        self.customers_by_id: Dict[str, Any] = {}
        self.customers_by_phone: Dict[str, Any] = {}
        for customer in customers:
            self.customers_by_id[customer.id] = customer
            phone = normalize_phone(customer.phone_number)
            if phone:
                self.customers_by_phone.setdefault(phone, customer)

        # Tickets and deals arrive newest first; the first match wins
        self.open_tickets_by_customer: Dict[str, Any] = {}
        for ticket in tickets:
            if ticket.customer_id and ticket.status not in CLOSED_TICKET_STATUSES:
                self.open_tickets_by_customer.setdefault(ticket.customer_id, ticket)

        self.deals_by_phone: Dict[str, Any] = {}
        self.deals_by_customer: Dict[str, Any] = {}
        for deal in deals:
            phone = normalize_phone(deal.customer_phone)
            if phone:
                self.deals_by_phone.setdefault(phone, deal)
            if deal.customer_id:
                self.deals_by_customer.setdefault(deal.customer_id, deal)

    def find_customer(self, thread: ConversationThread) -> Optional[Any]:
        if thread.customer_id and thread.customer_id in self.customers_by_id:
            return self.customers_by_id[thread.customer_id]
        return self.customers_by_phone.get(thread.contact_point)

    def link(self, thread: ConversationThread) -> ConversationThread:
        """Attach customer id, open ticket, deal and tags to a thread"""
        customer = self.find_customer(thread)
        customer_id = customer.id if customer is not None else thread.customer_id

        ticket = self.open_tickets_by_customer.get(customer_id) if customer_id else None
        deal = self.deals_by_phone.get(thread.contact_point)
        if deal is None and customer_id:
            deal = self.deals_by_customer.get(customer_id)

        tags = tuple(customer.tags or []) if customer is not None else ()
        return replace(thread, customer_id=customer_id, ticket=ticket, deal=deal, tags=tags)

    def assemble(self, thread: ConversationThread) -> ConversationView:
        thread = self.link(thread)
        customer = self.find_customer(thread)
        ticket = thread.ticket
        last = thread.last_entry

        return ConversationView(
            id=ticket.id if ticket is not None else f"convo-{thread.contact_point}",
            customer_id=thread.customer_id,
            customer_name=(customer.full_name if customer is not None else "") or UNKNOWN_CALLER,
            customer_phone=thread.contact_point,
            messages=list(thread.entries),
            channel=primary_channel(thread),
            status=ticket_status(ticket),
            priority=ticket.priority if ticket is not None else "medium",
            unread=is_unread(thread),
            last_message_at=last.created_at if last else None,
            preview=truncate_text(last.content, 100) if last and last.content else "No messages",
            tags=list(thread.tags),
            vehicle=_vehicle(ticket, customer),
            ticket=_ticket_dict(ticket) if ticket is not None else None,
            deal=_deal_dict(thread.deal) if thread.deal is not None else None,
            ltv=round(customer.total_spend_cents / 100) if customer is not None and customer.total_spend_cents else None
        )

    def assemble_all(self, threads: Iterable[ConversationThread]) -> List[ConversationView]:
        """Assemble and order conversations most recent first"""
        views = [self.assemble(t) for t in threads]
        views.sort(key=lambda v: v.last_message_at or datetime.min, reverse=True)
        return views
