"""
Contact point resolution
Maps a phone number to a customer, creating a placeholder customer on first contact
"""

from typing import Optional, Tuple

import structlog
from sqlalchemy.exc import IntegrityError

from ..database.crud import CustomerCRUD
from ..database.init_db import DatabaseManager
from ..utils.helpers import normalize_phone

logger = structlog.get_logger("inbox.contact_points")

UNKNOWN_FIRST_NAME = "Unknown"
UNKNOWN_LAST_NAME = "Caller"
UNKNOWN_CALLER = "Unknown Caller"

# Stored name values that are defaults rather than verified identity
PLACEHOLDER_VALUES = {"", "unknown", "caller", "unknown caller"}


def is_placeholder(value: Optional[str]) -> bool:
    """True if a stored identity field holds no verified data"""
    if value is None:
        return True
    return value.strip().lower() in PLACEHOLDER_VALUES


def split_display_name(display_name: Optional[str]) -> Tuple[str, str]:
    """Split a display name into first/last, falling back to placeholders"""
    if not display_name or is_placeholder(display_name):
        return UNKNOWN_FIRST_NAME, UNKNOWN_LAST_NAME

    parts = display_name.strip().split(None, 1)
    if len(parts) == 1:
        return parts[0], UNKNOWN_LAST_NAME
    return parts[0], parts[1]


class ContactPointResolver:
    """Resolve phone numbers to customer ids within one merchant"""

    def __init__(self, db: DatabaseManager):
        self.db = db

    async def resolve(
        self,
        merchant_id: str,
        phone: Optional[str],
        display_name: Optional[str] = None,
        source: str = "phone"
    ) -> Optional[str]:
        """
        Return the customer id for a phone number, creating the customer if needed.

        Never raises: on any failure the error is logged and None is returned,
        so the caller's own write can proceed without a customer link.
        """
        contact_point = normalize_phone(phone)
        if not contact_point:
            return None

        try:
            async with self.db.get_session() as session:
                customer = await CustomerCRUD.get_customer_by_phone(session, merchant_id, contact_point)
                if customer:
                    return customer.id

                first_name, last_name = split_display_name(display_name)
                try:
                    customer = await CustomerCRUD.create_customer(
                        session=session,
                        merchant_id=merchant_id,
                        phone_number=contact_point,
                        first_name=first_name,
                        last_name=last_name,
                        source=source
                    )
                except IntegrityError:
                    # A concurrent first contact inserted the same phone first
                    await session.rollback()
                    customer = await CustomerCRUD.get_customer_by_phone(session, merchant_id, contact_point)
                    if customer is None:
                        raise
                    logger.info(
                        "Customer created concurrently, reusing",
                        merchant_id=merchant_id,
                        customer_id=customer.id
                    )
                    return customer.id

                logger.info(
                    "Created placeholder customer",
                    merchant_id=merchant_id,
                    customer_id=customer.id,
                    source=source
                )
                return customer.id

        except Exception as e:
            logger.warning(
                "Contact point resolution failed",
                merchant_id=merchant_id,
                phone=contact_point,
                error=str(e)
            )
            return None
