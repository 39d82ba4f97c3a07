"""
CRUD operations for database models
Async operations with proper error handling
"""

import asyncio
from datetime import datetime
from typing import List, Optional, Dict, Any

from sqlalchemy import select, update, desc
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import OperationalError, PendingRollbackError

from .models import (
    Customer, Interaction, CallRecord, Ticket, Deal, Action,
    AnalysisStatus, new_id
)


async def retry_on_lock(func, *args, session=None, max_retries=5, initial_delay=0.1, **kwargs):
    """Retry function on database lock with exponential backoff"""
    for attempt in range(max_retries):
        try:
            return await func(*args, **kwargs)
        except (OperationalError, PendingRollbackError) as e:
            error_str = str(e)
            if ("database is locked" in error_str or "PendingRollbackError" in error_str) and attempt < max_retries - 1:
                # Rollback the session before retry
                if session:
                    await session.rollback()
                delay = initial_delay * (2 ** attempt)
                await asyncio.sleep(delay)
                continue
            raise


class CustomerCRUD:
    """CRUD operations for Customer model"""

    @staticmethod
    async def get_customer(session: AsyncSession, customer_id: str) -> Optional[Customer]:
        """Get customer by ID"""
        result = await session.execute(
            select(Customer).where(Customer.id == customer_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get_customer_by_phone(
        session: AsyncSession,
        merchant_id: str,
        phone_number: str
    ) -> Optional[Customer]:
        """Get customer by exact phone match within a merchant"""
        result = await session.execute(
            select(Customer).where(
                Customer.merchant_id == merchant_id,
                Customer.phone_number == phone_number
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def create_customer(
        session: AsyncSession,
        merchant_id: str,
        phone_number: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        source: Optional[str] = None,
        tags: Optional[List[str]] = None,
        notes: Optional[str] = None
    ) -> Customer:
        """Create a new customer"""
        customer = Customer(
            merchant_id=merchant_id,
            phone_number=phone_number,
            first_name=first_name,
            last_name=last_name,
            source=source,
            tags=list(tags or []),
            notes=notes
        )
        session.add(customer)
        await retry_on_lock(session.commit, session=session)
        await session.refresh(customer)
        return customer

    @staticmethod
    async def update_customer(
        session: AsyncSession,
        customer_id: str,
        **fields
    ) -> bool:
        """Update selected customer columns"""
        if not fields:
            return False
        fields["updated_at"] = datetime.utcnow()
        result = await session.execute(
            update(Customer)
            .where(Customer.id == customer_id)
            .values(**fields)
        )
        await retry_on_lock(session.commit, session=session)
        return result.rowcount > 0

    @staticmethod
    async def get_merchant_customers(session: AsyncSession, merchant_id: str) -> List[Customer]:
        """Get all customers of a merchant"""
        result = await session.execute(
            select(Customer).where(Customer.merchant_id == merchant_id)
        )
        return list(result.scalars().all())


class InteractionCRUD:
    """CRUD operations for the unified interaction feed"""

    @staticmethod
    async def create_interaction(
        session: AsyncSession,
        merchant_id: str,
        contact_point: Optional[str],
        channel: str,
        direction: str,
        content: str,
        customer_id: Optional[str] = None,
        interaction_id: Optional[str] = None,
        created_at: Optional[datetime] = None
    ) -> Interaction:
        """Append an interaction to the feed"""
        interaction = Interaction(
            merchant_id=merchant_id,
            contact_point=contact_point,
            channel=channel,
            direction=direction,
            content=content,
            customer_id=customer_id,
            created_at=created_at or datetime.utcnow()
        )
        if interaction_id:
            interaction.id = interaction_id
        session.add(interaction)
        await retry_on_lock(session.commit, session=session)
        await session.refresh(interaction)
        return interaction

    @staticmethod
    async def get_interaction(session: AsyncSession, interaction_id: str) -> Optional[Interaction]:
        """Get interaction by ID"""
        result = await session.execute(
            select(Interaction).where(Interaction.id == interaction_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get_merchant_interactions(
        session: AsyncSession,
        merchant_id: str,
        limit: int = 500
    ) -> List[Interaction]:
        """Get the most recent interactions of a merchant, oldest first"""
        result = await session.execute(
            select(Interaction)
            .where(Interaction.merchant_id == merchant_id)
            .order_by(desc(Interaction.created_at))
            .limit(limit)
        )
        return list(reversed(result.scalars().all()))


class CallRecordCRUD:
    """CRUD operations for CallRecord model"""

    @staticmethod
    async def get_call_record(session: AsyncSession, call_id: str) -> Optional[CallRecord]:
        """Get call record by ID"""
        result = await session.execute(
            select(CallRecord).where(CallRecord.id == call_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def create_call_record(
        session: AsyncSession,
        call_id: str,
        merchant_id: str,
        customer_phone: Optional[str] = None,
        direction: Optional[str] = None,
        status: Optional[str] = None
    ) -> CallRecord:
        """Create a new call record"""
        call = CallRecord(
            id=call_id,
            merchant_id=merchant_id,
            customer_phone=customer_phone,
            direction=direction,
            status=status
        )
        session.add(call)
        await retry_on_lock(session.commit, session=session)
        await session.refresh(call)
        return call

    @staticmethod
    async def update_call_record(
        session: AsyncSession,
        call_id: str,
        **fields
    ) -> bool:
        """Update selected call record columns"""
        if not fields:
            return False
        fields["updated_at"] = datetime.utcnow()
        result = await session.execute(
            update(CallRecord)
            .where(CallRecord.id == call_id)
            .values(**fields)
        )
        await retry_on_lock(session.commit, session=session)
        return result.rowcount > 0

    @staticmethod
    async def update_analysis(
        session: AsyncSession,
        call_id: str,
        status: AnalysisStatus,
        result: Optional[Dict[str, Any]] = None,
        rating: Optional[int] = None,
        error: Optional[str] = None
    ) -> bool:
        """Update call analysis status and result"""
        values = {
            "analysis_status": status.value,
            "analysis_error": error,
            "updated_at": datetime.utcnow()
        }
        if result is not None:
            values["analysis_result"] = result
            values["rating"] = rating
            values["analyzed_at"] = datetime.utcnow()

        update_result = await session.execute(
            update(CallRecord)
            .where(CallRecord.id == call_id)
            .values(**values)
        )
        await retry_on_lock(session.commit, session=session)
        return update_result.rowcount > 0

    @staticmethod
    async def get_merchant_call_records(
        session: AsyncSession,
        merchant_id: str,
        limit: int = 200
    ) -> List[CallRecord]:
        """Get the most recent call records of a merchant, oldest first"""
        result = await session.execute(
            select(CallRecord)
            .where(CallRecord.merchant_id == merchant_id)
            .order_by(desc(CallRecord.created_at))
            .limit(limit)
        )
        return list(reversed(result.scalars().all()))


class TicketCRUD:
    """Read access to tickets"""

    @staticmethod
    async def get_merchant_tickets(session: AsyncSession, merchant_id: str) -> List[Ticket]:
        """Get merchant tickets, newest first"""
        result = await session.execute(
            select(Ticket)
            .where(Ticket.merchant_id == merchant_id)
            .order_by(desc(Ticket.created_at))
        )
        return list(result.scalars().all())


class DealCRUD:
    """CRUD operations for Deal model"""

    @staticmethod
    async def create_deal(session: AsyncSession, **fields) -> Deal:
        """Insert a new deal"""
        deal = Deal(**fields)
        session.add(deal)
        await retry_on_lock(session.commit, session=session)
        await session.refresh(deal)
        return deal

    @staticmethod
    async def get_merchant_deals(session: AsyncSession, merchant_id: str) -> List[Deal]:
        """Get merchant deals, newest first"""
        result = await session.execute(
            select(Deal)
            .where(Deal.merchant_id == merchant_id)
            .order_by(desc(Deal.created_at))
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_customer_deals(session: AsyncSession, customer_id: str) -> List[Deal]:
        """Get deals linked to a customer"""
        result = await session.execute(
            select(Deal).where(Deal.customer_id == customer_id)
        )
        return list(result.scalars().all())


class ActionCRUD:
    """CRUD operations for Action model"""

    @staticmethod
    async def create_actions(session: AsyncSession, actions: List[Dict[str, Any]]) -> List[Action]:
        """Insert several actions in one commit"""
        rows = [Action(**{"id": new_id(), **fields}) for fields in actions]
        session.add_all(rows)
        await retry_on_lock(session.commit, session=session)
        return rows

    @staticmethod
    async def get_customer_actions(session: AsyncSession, customer_id: str) -> List[Action]:
        """Get actions linked to a customer"""
        result = await session.execute(
            select(Action)
            .where(Action.customer_id == customer_id)
            .order_by(Action.created_at)
        )
        return list(result.scalars().all())
