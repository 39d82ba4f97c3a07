"""
Analysis Router - on-demand transcript analysis
"""

from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Depends, HTTPException
from pydantic import AliasChoices, BaseModel, Field
import structlog

from ...analysis.transcripts import normalize_transcript
from ...services.call_analysis import CallAnalysisService
from ..dependencies import get_analysis_service, get_merchant_id

logger = structlog.get_logger("inbox.web.analysis")

router = APIRouter(prefix="/api", tags=["analysis"])


class AnalyzeTranscriptRequest(BaseModel):
    transcript: Optional[Union[str, List[Any]]] = None
    call_log_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("call_log_id", "callLogId")
    )


@router.post("/analyze-transcript")
async def analyze_transcript(
    request: AnalyzeTranscriptRequest,
    merchant_id: str = Depends(get_merchant_id),
    service: CallAnalysisService = Depends(get_analysis_service)
) -> Dict[str, Any]:
    """Analyze a transcript and apply the results to the linked call, if any"""
    if not normalize_transcript(request.transcript):
        raise HTTPException(status_code=400, detail="Transcript is required")

    logger.info("Analyze transcript requested", merchant_id=merchant_id, call_id=request.call_log_id)

    outcome = await service.analyze(
        request.transcript,
        merchant_id=merchant_id,
        call_record_id=request.call_log_id
    )
    return {
        "success": True,
        "analysis": outcome.analysis.model_dump(),
    }
