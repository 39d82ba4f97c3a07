"""
Shared FastAPI dependencies
"""

from typing import Optional

from fastapi import Depends, Header

from ..analysis.analyzer import TranscriptAnalyzer, get_analyzer
from ..config import get_settings
from ..database.init_db import DatabaseManager, get_db_manager
from ..services.call_analysis import CallAnalysisService


def get_merchant_id(x_merchant_id: Optional[str] = Header(None)) -> str:
    """Merchant scope from the X-Merchant-Id header"""
    if x_merchant_id and x_merchant_id.strip():
        return x_merchant_id.strip()
    return get_settings().default_merchant_id


def get_analysis_service(
    db: DatabaseManager = Depends(get_db_manager),
    analyzer: TranscriptAnalyzer = Depends(get_analyzer)
) -> CallAnalysisService:
    return CallAnalysisService(db, analyzer)
