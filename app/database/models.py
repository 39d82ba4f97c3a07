"""
SQLAlchemy models for the unified inbox
Customers, channel interactions, call records, tickets, deals and actions
"""

from datetime import datetime
from uuid import uuid4
from enum import Enum

from sqlalchemy import (
    Column, String, Integer, Float, Text, JSON,
    Index, UniqueConstraint, CheckConstraint
)
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.dialects.sqlite import DATETIME


def new_id() -> str:
    return str(uuid4())


class Direction(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class AnalysisStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class DealStatus(str, Enum):
    NEW_INQUIRY = "new_inquiry"
    QUOTE_SENT = "quote_sent"
    FOLLOW_UP = "follow_up"
    BOOKED = "booked"
    LOST = "lost"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


Base = declarative_base()


class TimestampMixin:
    """Mixin for created_at and updated_at timestamps"""
    created_at = Column(
        DATETIME,
        default=datetime.utcnow,
        nullable=False,
        index=True
    )
    updated_at = Column(
        DATETIME,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False
    )


class Customer(Base, TimestampMixin):
    """Customer identity, one per phone number per merchant"""
    __tablename__ = "customers"

    id = Column(String(36), primary_key=True, default=new_id)
    merchant_id = Column(String(64), nullable=False, index=True)
    phone_number = Column(String(32), nullable=True, index=True)
    email = Column(String(255), nullable=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    tags = Column(JSON, nullable=False, default=list)

    # Vehicle / service attributes filled in by call analysis
    vehicle_year = Column(String(4), nullable=True)
    vehicle_make = Column(String(100), nullable=True)
    vehicle_model = Column(String(100), nullable=True)
    service_requested = Column(String(255), nullable=True)

    total_spend_cents = Column(Integer, default=0, nullable=False)
    last_visit_date = Column(DATETIME, nullable=True)
    source = Column(String(50), nullable=True)
    status = Column(String(50), default="active", nullable=False)
    notes = Column(Text, nullable=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    __table_args__ = (
        UniqueConstraint("merchant_id", "phone_number", name="uq_customer_merchant_phone"),
    )


class Interaction(Base):
    """Unified channel feed: SMS, calls, notes, ticket comments"""
    __tablename__ = "interactions"

    id = Column(String(64), primary_key=True, default=new_id)
    merchant_id = Column(String(64), nullable=False, index=True)
    customer_id = Column(String(36), nullable=True, index=True)
    contact_point = Column(String(255), nullable=True, index=True)
    channel = Column(String(20), nullable=False, index=True)
    direction = Column(String(10), nullable=False)
    content = Column(Text, nullable=False, default="")
    created_at = Column(DATETIME, default=datetime.utcnow, nullable=False, index=True)

    __table_args__ = (
        Index("idx_interactions_merchant_created", "merchant_id", "created_at"),
    )


class CallRecord(Base, TimestampMixin):
    """Phone call with transcript and summary from the voice provider"""
    __tablename__ = "call_records"

    id = Column(String(64), primary_key=True, default=new_id)
    merchant_id = Column(String(64), nullable=False, index=True)
    customer_phone = Column(String(32), nullable=True, index=True)
    direction = Column(String(10), nullable=True)
    status = Column(String(50), nullable=True)
    duration_seconds = Column(Integer, nullable=True)
    summary = Column(Text, nullable=True)
    transcript = Column(JSON, nullable=True)  # plain text or list of speaker turns

    # Analysis bookkeeping
    analysis_status = Column(
        String(20),
        default=AnalysisStatus.PENDING.value,
        nullable=False,
        index=True
    )
    analysis_result = Column(JSON, nullable=True)
    analysis_error = Column(Text, nullable=True)
    rating = Column(Integer, nullable=True)
    deal_id = Column(String(36), nullable=True)
    analyzed_at = Column(DATETIME, nullable=True)

    __table_args__ = (
        Index("idx_call_records_merchant_created", "merchant_id", "created_at"),
        CheckConstraint("duration_seconds >= 0", name="check_duration_positive"),
        CheckConstraint("rating >= 0 AND rating <= 10", name="check_rating_range"),
    )


class Ticket(Base, TimestampMixin):
    """Support ticket, read-only to the inbox pipeline"""
    __tablename__ = "tickets"

    id = Column(String(36), primary_key=True, default=new_id)
    merchant_id = Column(String(64), nullable=False, index=True)
    customer_id = Column(String(36), nullable=True, index=True)
    status = Column(String(20), default="open", nullable=False, index=True)
    priority = Column(String(20), default="medium", nullable=False)
    title = Column(String(255), nullable=True)
    source = Column(String(20), nullable=True)
    vehicle_year = Column(String(4), nullable=True)
    vehicle_make = Column(String(100), nullable=True)
    vehicle_model = Column(String(100), nullable=True)
    vehicle_color = Column(String(50), nullable=True)
    vehicle_vin = Column(String(32), nullable=True)


class Deal(Base, TimestampMixin):
    """Sales pipeline deal"""
    __tablename__ = "deals"

    id = Column(String(36), primary_key=True, default=new_id)
    merchant_id = Column(String(64), nullable=False, index=True)
    customer_id = Column(String(36), nullable=True, index=True)
    customer_name = Column(String(255), nullable=True)
    customer_phone = Column(String(32), nullable=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), default=DealStatus.NEW_INQUIRY.value, nullable=False, index=True)
    value = Column(Float, default=0, nullable=False)
    priority = Column(String(20), default=Priority.MEDIUM.value, nullable=False)
    source = Column(String(20), nullable=True)
    vehicle_year = Column(String(4), nullable=True)
    vehicle_make = Column(String(100), nullable=True)
    vehicle_model = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('new_inquiry', 'quote_sent', 'follow_up', 'booked', 'lost')",
            name="check_deal_status"
        ),
    )


class Action(Base, TimestampMixin):
    """Follow-up task for a customer"""
    __tablename__ = "actions"

    id = Column(String(36), primary_key=True, default=new_id)
    merchant_id = Column(String(64), nullable=False, index=True)
    customer_id = Column(String(36), nullable=True, index=True)
    call_record_id = Column(String(64), nullable=True, index=True)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), default="open", nullable=False, index=True)
    priority = Column(String(20), default=Priority.MEDIUM.value, nullable=False)
    type = Column(String(30), default="follow_up", nullable=False)
    source = Column(String(20), nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    vehicle = Column(String(255), nullable=True)

    __table_args__ = (
        Index("idx_actions_customer_status", "customer_id", "status"),
    )
