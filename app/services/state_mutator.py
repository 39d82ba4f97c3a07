"""
State mutator
Applies transcript analysis to customer, deal and action records.
Each step runs in its own session and fails independently.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

import structlog

from ..analysis.schemas import AnalysisResult
from ..database.crud import ActionCRUD, CustomerCRUD, DealCRUD
from ..database.init_db import DatabaseManager
from ..database.models import Priority
from ..inbox.contact_points import ContactPointResolver, is_placeholder
from ..utils.helpers import normalize_phone

logger = structlog.get_logger("inbox.services.state_mutator")

DEAL_CONFIDENCE_THRESHOLD = 50
ACTION_SOURCE = "phone"
AI_TAG = "AI"

# Customer columns that analysis may fill when they hold no verified data
OVERWRITABLE_FIELDS = (
    "first_name",
    "last_name",
    "vehicle_year",
    "vehicle_make",
    "vehicle_model",
    "service_requested",
)


def merge_tags(existing: Optional[Iterable[str]], new: Optional[Iterable[str]]) -> List[str]:
    """Order-preserving set union"""
    merged = []
    for tag in list(existing or []) + list(new or []):
        if tag and tag not in merged:
            merged.append(tag)
    return merged


def vehicle_label(analysis: AnalysisResult) -> str:
    info = analysis.customer_info
    return " ".join(p for p in (info.vehicle_year, info.vehicle_make, info.vehicle_model) if p)


@dataclass
class MutationReport:
    """Outcome of applying one analysis"""
    customer_id: Optional[str] = None
    deal_id: Optional[str] = None
    action_ids: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "customer_id": self.customer_id,
            "deal_id": self.deal_id,
            "action_ids": list(self.action_ids),
            "errors": list(self.errors),
        }


class StateMutator:
    """Write analysis results back into CRM state"""

    def __init__(self, db: DatabaseManager, resolver: Optional[ContactPointResolver] = None):
        self.db = db
        self.resolver = resolver or ContactPointResolver(db)

    async def apply(
        self,
        analysis: AnalysisResult,
        merchant_id: str,
        customer_phone: Optional[str],
        call_record_id: Optional[str] = None,
        customer_id: Optional[str] = None
    ) -> MutationReport:
        """Run customer, deal and action steps; never raises"""
        report = MutationReport(customer_id=customer_id)
        phone = normalize_phone(customer_phone)
        customer_name = None

        try:
            report.customer_id, customer_name = await self._reconcile_customer(
                analysis, merchant_id, phone, customer_id
            )
        except Exception as e:
            logger.error("Customer update failed", merchant_id=merchant_id, phone=phone, error=str(e))
            report.errors.append(f"customer: {e}")

        try:
            report.deal_id = await self._create_deal(
                analysis, merchant_id, phone, report.customer_id, customer_name
            )
        except Exception as e:
            logger.error("Deal creation failed", merchant_id=merchant_id, customer_id=report.customer_id, error=str(e))
            report.errors.append(f"deal: {e}")

        try:
            report.action_ids = await self._create_actions(
                analysis, merchant_id, report.customer_id, call_record_id
            )
        except Exception as e:
            logger.error("Action creation failed", merchant_id=merchant_id, customer_id=report.customer_id, error=str(e))
            report.errors.append(f"actions: {e}")

        logger.info(
            "Analysis applied",
            merchant_id=merchant_id,
            call_id=call_record_id,
            customer_id=report.customer_id,
            deal_id=report.deal_id,
            actions=len(report.action_ids),
            errors=len(report.errors)
        )
        return report

    async def _reconcile_customer(
        self,
        analysis: AnalysisResult,
        merchant_id: str,
        phone: Optional[str],
        customer_id: Optional[str]
    ):
        """Merge tags and fill placeholder fields; returns (customer_id, display name)"""
        if customer_id is None:
            customer_id = await self.resolver.resolve(merchant_id, phone, source=ACTION_SOURCE)
        if customer_id is None:
            return None, None

        async with self.db.get_session() as session:
            customer = await CustomerCRUD.get_customer(session, customer_id)
            if customer is None:
                return None, None

            updates: Dict[str, Any] = {}
            tags = merge_tags(customer.tags, analysis.tags)
            if tags != list(customer.tags or []):
                updates["tags"] = tags

            info = analysis.customer_info
            if info.confidence != "low":
                for name in OVERWRITABLE_FIELDS:
                    value = getattr(info, name)
                    if value and is_placeholder(getattr(customer, name)):
                        updates[name] = value

            if updates:
                await CustomerCRUD.update_customer(session, customer.id, **updates)
                logger.info("Customer updated from analysis", customer_id=customer.id, fields=sorted(updates))

            first_name = updates.get("first_name", customer.first_name)
            last_name = updates.get("last_name", customer.last_name)
            name = f"{first_name or ''} {last_name or ''}".strip()
            return customer.id, name

    async def _create_deal(
        self,
        analysis: AnalysisResult,
        merchant_id: str,
        phone: Optional[str],
        customer_id: Optional[str],
        customer_name: Optional[str]
    ) -> Optional[str]:
        pipeline = analysis.pipeline
        if pipeline.confidence <= DEAL_CONFIDENCE_THRESHOLD:
            return None

        info = analysis.customer_info
        notes = (
            f"Auto-generated from call analysis.\n"
            f"Rating: {analysis.rating}/10\n"
            f"Next Actions: {', '.join(analysis.next_actions)}"
        )
        async with self.db.get_session() as session:
            deal = await DealCRUD.create_deal(
                session,
                merchant_id=merchant_id,
                customer_id=customer_id,
                customer_name=customer_name or "Unknown Customer",
                customer_phone=phone,
                title=pipeline.title,
                description=analysis.summary,
                status=pipeline.status,
                value=pipeline.deal_value,
                priority=pipeline.priority,
                source=ACTION_SOURCE,
                vehicle_year=info.vehicle_year,
                vehicle_make=info.vehicle_make,
                vehicle_model=info.vehicle_model,
                notes=notes
            )
            logger.info("Deal created", deal_id=deal.id, status=deal.status, value=deal.value)
            return deal.id

    async def _create_actions(
        self,
        analysis: AnalysisResult,
        merchant_id: str,
        customer_id: Optional[str],
        call_record_id: Optional[str]
    ) -> List[str]:
        if not analysis.next_actions:
            return []

        vehicle = vehicle_label(analysis) or None
        tags = [AI_TAG, *analysis.tags]
        rows = [
            {
                "merchant_id": merchant_id,
                "customer_id": customer_id,
                "call_record_id": call_record_id,
                "title": action,
                "description": f"Auto-generated from call analysis.\nContext: {analysis.summary}",
                "status": "open",
                "priority": Priority.MEDIUM.value,
                "type": "follow_up",
                "source": ACTION_SOURCE,
                "tags": tags,
                "vehicle": vehicle,
            }
            for action in analysis.next_actions
        ]
        async with self.db.get_session() as session:
            actions = await ActionCRUD.create_actions(session, rows)
            return [a.id for a in actions]
