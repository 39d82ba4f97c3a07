"""
Call transcript analysis
"""

from .analyzer import TranscriptAnalyzer, get_analyzer
from .schemas import AnalysisResult, CustomerInfo, PipelineInfo
from .transcripts import normalize_transcript
