"""
Call analysis use case
Analyzer -> call record bookkeeping -> state mutation -> deal link-back
"""

from dataclasses import dataclass
from typing import Optional

import structlog

from ..analysis.analyzer import TranscriptAnalyzer
from ..analysis.schemas import AnalysisResult
from ..analysis.transcripts import Transcript
from ..database.crud import CallRecordCRUD
from ..database.init_db import DatabaseManager
from ..database.models import AnalysisStatus
from .state_mutator import MutationReport, StateMutator

logger = structlog.get_logger("inbox.services.call_analysis")


class AnalysisFailedError(Exception):
    """Provider or parsing failure for a stored call; safe to retry"""
    pass


@dataclass
class AnalysisOutcome:
    analysis: AnalysisResult
    call_record_id: Optional[str] = None
    report: Optional[MutationReport] = None

    @property
    def persisted(self) -> bool:
        return self.call_record_id is not None


class CallAnalysisService:
    """Analyze call transcripts and apply the results"""

    def __init__(
        self,
        db: DatabaseManager,
        analyzer: TranscriptAnalyzer,
        mutator: Optional[StateMutator] = None
    ):
        self.db = db
        self.analyzer = analyzer
        self.mutator = mutator or StateMutator(db)

    async def analyze(
        self,
        transcript: Transcript,
        merchant_id: str,
        call_record_id: Optional[str] = None
    ) -> AnalysisOutcome:
        """
        Analyze a transcript and, when it belongs to a known call record,
        persist the result and update customer, deal and action state.

        An unknown call record id is not an error: the analysis is returned
        and nothing is written.
        """
        analysis = await self.analyzer.analyze(transcript)
        if not call_record_id:
            return AnalysisOutcome(analysis=analysis)

        async with self.db.get_session() as session:
            call = await CallRecordCRUD.get_call_record(session, call_record_id)

        if call is None or call.merchant_id != merchant_id:
            logger.warning(
                "Call record not found, returning analysis only",
                call_id=call_record_id,
                merchant_id=merchant_id
            )
            return AnalysisOutcome(analysis=analysis)

        if analysis.error:
            async with self.db.get_session() as session:
                await CallRecordCRUD.update_analysis(
                    session, call.id, AnalysisStatus.FAILED, error=analysis.error
                )
            return AnalysisOutcome(analysis=analysis, call_record_id=call.id)

        async with self.db.get_session() as session:
            await CallRecordCRUD.update_analysis(
                session,
                call.id,
                AnalysisStatus.COMPLETED,
                result=analysis.model_dump(),
                rating=analysis.rating
            )

        report = await self.mutator.apply(
            analysis,
            merchant_id=call.merchant_id,
            customer_phone=call.customer_phone,
            call_record_id=call.id
        )

        if report.deal_id:
            try:
                async with self.db.get_session() as session:
                    await CallRecordCRUD.update_call_record(session, call.id, deal_id=report.deal_id)
            except Exception as e:
                logger.error("Failed to link deal to call", call_id=call.id, deal_id=report.deal_id, error=str(e))
                report.errors.append(f"deal link: {e}")

        return AnalysisOutcome(analysis=analysis, call_record_id=call.id, report=report)

    async def analyze_call_record(self, call_record_id: str) -> Optional[AnalysisOutcome]:
        """
        Analyze a stored call by id. Used by background workers.

        Already-analyzed calls are skipped, so redelivery is harmless.
        Raises AnalysisFailedError on provider failure so the queue retries.
        """
        async with self.db.get_session() as session:
            call = await CallRecordCRUD.get_call_record(session, call_record_id)
            if call is None:
                logger.warning("Call record not found", call_id=call_record_id)
                return None
            if call.analysis_status == AnalysisStatus.COMPLETED.value:
                logger.info("Call already analyzed, skipping", call_id=call_record_id)
                return None
            if not call.transcript:
                logger.info("Call has no transcript, skipping", call_id=call_record_id)
                return None

            await CallRecordCRUD.update_analysis(session, call.id, AnalysisStatus.PROCESSING)
            transcript = call.transcript
            merchant_id = call.merchant_id

        outcome = await self.analyze(transcript, merchant_id, call_record_id=call_record_id)
        if outcome.analysis.error:
            raise AnalysisFailedError(outcome.analysis.error)
        return outcome
