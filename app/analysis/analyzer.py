"""
Transcript analyzer
One OpenAI chat completion per transcript with a strict JSON contract
"""

import json
from typing import Any, Dict, Optional

import structlog
from openai import AsyncOpenAI

from ..config import Settings, get_settings
from .prompts import build_messages
from .schemas import AnalysisResult
from .transcripts import Transcript, normalize_transcript

logger = structlog.get_logger("inbox.analysis.analyzer")

MIN_TRANSCRIPT_LENGTH = 20


def enforce_json_only(text: str) -> Dict[str, Any]:
    """Parse strict JSON from LLM response"""
    # Strip markdown code blocks if present
    text = (text or "").strip()
    if text.startswith("```json"):
        text = text[7:]
    elif text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]

    data = json.loads(text.strip())
    if not isinstance(data, dict):
        raise ValueError("Expected a JSON object")
    return data


class TranscriptAnalyzer:
    """Extract rating, summary, actions, customer info and pipeline from a call"""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[AsyncOpenAI] = None):
        self.settings = settings or get_settings()
        self.model = self.settings.openai_model
        self.temperature = self.settings.openai_temperature
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        # Created lazily so a missing key degrades analysis instead of startup
        if self._client is None:
            if not self.settings.openai_api_key:
                raise RuntimeError("OpenAI API key not configured")
            self._client = AsyncOpenAI(api_key=self.settings.openai_api_key)
        return self._client

    async def analyze(self, transcript: Transcript) -> AnalysisResult:
        """
        Analyze a transcript.

        Never raises: short input yields a zero-signal result, and any
        provider or parsing failure yields a degraded low-confidence result.
        """
        text = normalize_transcript(transcript)
        if len(text) < MIN_TRANSCRIPT_LENGTH:
            logger.info("Transcript too short, skipping analysis", length=len(text))
            return AnalysisResult.too_short()

        try:
            logger.info("Requesting transcript analysis", model=self.model, transcript_length=len(text))

            response = await self.client.chat.completions.create(
                model=self.model,
                messages=build_messages(text),
                temperature=self.temperature,
                response_format={"type": "json_object"}
            )

            content = response.choices[0].message.content
            data = enforce_json_only(content)
            data.pop("error", None)
            data["confidence"] = "high"
            result = AnalysisResult.model_validate(data)

            logger.info(
                "Transcript analysis completed",
                rating=result.rating,
                pipeline_status=result.pipeline.status,
                pipeline_confidence=result.pipeline.confidence
            )
            return result

        except Exception as e:
            logger.error("Transcript analysis failed", error=str(e))
            return AnalysisResult.degraded(str(e))


# Global analyzer instance
transcript_analyzer = TranscriptAnalyzer()


def get_analyzer() -> TranscriptAnalyzer:
    """Dependency for FastAPI routes"""
    return transcript_analyzer
