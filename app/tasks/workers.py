"""
Background task workers
"""

from typing import Any, Dict

import structlog

from ..services.call_analysis import CallAnalysisService

logger = structlog.get_logger("inbox.tasks.workers")


class AnalyzeCallTask:
    """Task to analyze a stored call transcript and apply the results"""

    def __init__(self, call_id: str, service: CallAnalysisService):
        self.call_id = call_id
        self.service = service

    async def execute(self) -> Dict[str, Any]:
        """Execute analysis task; raises on provider failure so the queue retries"""
        logger.info("Starting analysis", call_id=self.call_id)

        outcome = await self.service.analyze_call_record(self.call_id)
        if outcome is None:
            return {"status": "skipped", "call_id": self.call_id}

        report = outcome.report
        logger.info(
            "Analysis task completed",
            call_id=self.call_id,
            rating=outcome.analysis.rating,
            deal_id=report.deal_id if report else None
        )
        return {
            "status": "completed",
            "call_id": self.call_id,
            "rating": outcome.analysis.rating,
            "deal_id": report.deal_id if report else None,
        }
