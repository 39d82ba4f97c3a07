"""
Tests for conversation assembly
"""

from datetime import datetime, timedelta

import pytest

from app.database.models import Customer, Deal, Ticket
from app.inbox.assembler import ConversationAssembler
from app.inbox.timeline import TimelineBuilder

T0 = datetime(2025, 3, 10, 14, 0, 0)
PHONE = "+15551234567"


@pytest.fixture
def customer():
    return Customer(
        id="cust-1",
        merchant_id="merchant-1",
        phone_number=PHONE,
        first_name="Maria",
        last_name="Lopez",
        tags=["VIP"],
        vehicle_year="2018",
        vehicle_make="Subaru",
        vehicle_model="Outback",
        total_spend_cents=125100
    )


def build_thread(interactions, calls=(), customer_id=None):
    return TimelineBuilder().build(interactions, list(calls), customer_ids={PHONE: customer_id} if customer_id else None)[0]


class TestDerivedFields:

    def test_unread_when_customer_spoke_last(self, make_interaction):
        thread = build_thread([
            make_interaction("i1", T0, direction="outbound", content="Your car is ready"),
            make_interaction("i2", T0 + timedelta(minutes=3), direction="inbound", content="On my way"),
        ])

        view = ConversationAssembler().assemble(thread)

        assert view.unread is True
        assert view.preview == "On my way"
        assert view.last_message_at == T0 + timedelta(minutes=3)

    def test_read_when_agent_replied(self, make_interaction):
        thread = build_thread([
            make_interaction("i1", T0, direction="inbound", content="Price for brakes?"),
            make_interaction("i2", T0 + timedelta(minutes=1), direction="outbound", content="About $400"),
        ])

        assert ConversationAssembler().assemble(thread).unread is False

    def test_primary_channel_prefers_phone(self, make_interaction, make_call):
        thread = build_thread(
            [make_interaction("i1", T0), make_interaction("i2", T0 + timedelta(minutes=1))],
            [make_call("c1", T0 + timedelta(hours=1), summary="Booked")]
        )

        assert ConversationAssembler().assemble(thread).channel == "phone"

    def test_primary_channel_sms_then_most_frequent(self, make_interaction):
        sms_thread = build_thread([
            make_interaction("i1", T0, channel="email"),
            make_interaction("i2", T0 + timedelta(minutes=1), channel="email"),
            make_interaction("i3", T0 + timedelta(minutes=2), channel="sms"),
        ])
        email_thread = build_thread([
            make_interaction("i1", T0, channel="email"),
            make_interaction("i2", T0 + timedelta(minutes=1), channel="email"),
            make_interaction("i3", T0 + timedelta(minutes=2), channel="web"),
        ])

        assembler = ConversationAssembler()
        assert assembler.assemble(sms_thread).channel == "sms"
        assert assembler.assemble(email_thread).channel == "email"

    def test_unresolved_customer(self, make_interaction):
        view = ConversationAssembler().assemble(build_thread([make_interaction("i1", T0, content="Hi")]))

        assert view.id == f"convo-{PHONE}"
        assert view.customer_id is None
        assert view.customer_name == "Unknown Caller"
        assert view.status == "open"
        assert view.priority == "medium"
        assert view.ticket is None
        assert view.deal is None


class TestLinking:

    def test_customer_fields(self, make_interaction, customer):
        thread = build_thread([make_interaction("i1", T0, content="Hi")])

        view = ConversationAssembler(customers=[customer]).assemble(thread)

        assert view.customer_id == "cust-1"
        assert view.customer_name == "Maria Lopez"
        assert view.tags == ["VIP"]
        assert view.ltv == 1251
        assert view.vehicle == {"year": "2018", "make": "Subaru", "model": "Outback"}

    def test_first_open_ticket_attached(self, make_interaction, customer):
        tickets = [
            Ticket(id="t-3", customer_id="cust-1", status="resolved", priority="low", title="Old"),
            Ticket(id="t-2", customer_id="cust-1", status="pending", priority="high", title="Brakes",
                   vehicle_year="2020", vehicle_make="Toyota", vehicle_model="Camry"),
            Ticket(id="t-1", customer_id="cust-1", status="open", priority="medium", title="Older open"),
        ]
        thread = build_thread([make_interaction("i1", T0)])

        view = ConversationAssembler(customers=[customer], tickets=tickets).assemble(thread)

        assert view.id == "t-2"
        assert view.ticket["id"] == "t-2"
        assert view.status == "waiting"
        assert view.priority == "high"
        assert view.vehicle["make"] == "Toyota"

    def test_urgent_ticket_status(self, make_interaction, customer):
        tickets = [Ticket(id="t-1", customer_id="cust-1", status="open", priority="urgent", title="Stranded")]

        view = ConversationAssembler(customers=[customer], tickets=tickets).assemble(
            build_thread([make_interaction("i1", T0)])
        )

        assert view.status == "urgent"

    def test_deal_matched_by_phone_or_customer(self, make_interaction, customer):
        by_phone = Deal(id="d-1", customer_phone="(555) 123-4567", title="Brake Job", status="booked", value=450)
        by_customer = Deal(id="d-2", customer_id="cust-1", title="Oil", status="new_inquiry", value=50)
        thread = build_thread([make_interaction("i1", T0)])

        view = ConversationAssembler(customers=[customer], deals=[by_phone, by_customer]).assemble(thread)
        assert view.deal["id"] == "d-1"

        view = ConversationAssembler(customers=[customer], deals=[by_customer]).assemble(thread)
        assert view.deal["id"] == "d-2"


def test_conversations_most_recent_first(make_interaction):
    threads = TimelineBuilder().build([
        make_interaction("i1", T0, contact_point="+15550000001"),
        make_interaction("i2", T0 + timedelta(hours=2), contact_point="+15550000002"),
        make_interaction("i3", T0 + timedelta(hours=1), contact_point="+15550000003"),
    ], [])

    views = ConversationAssembler().assemble_all(threads)

    assert [v.customer_phone for v in views] == ["+15550000002", "+15550000003", "+15550000001"]


def test_view_serializes(make_interaction, make_call):
    thread = build_thread(
        [make_interaction("i1", T0, channel="phone")],
        [make_call("c1", T0 + timedelta(minutes=4), summary="Brake noise")]
    )

    data = ConversationAssembler().assemble(thread).to_dict()

    assert data["messages"][0]["call_summary"] == "Brake noise"
    assert data["last_message_at"] == T0.isoformat()
    assert data["channel"] == "phone"
