"""
Analysis result schemas
The model answers in camelCase; everything is stored and returned snake_case.
"""

import re
from typing import List, Literal, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

from ..database.models import DealStatus, Priority

Confidence = Literal["high", "medium", "low"]

DEAL_STATUSES = {s.value for s in DealStatus}
PRIORITIES = {p.value for p in Priority}
CONFIDENCES = {"high", "medium", "low"}

EMPTY_MARKERS = {"", "null", "undefined", "none", "n/a"}
YEAR_PATTERN = re.compile(r"\b(19|20)\d{2}\b")
MIN_VEHICLE_YEAR = 1980
MAX_VEHICLE_YEAR = 2030
SERVICE_MAX_LENGTH = 100

TOO_SHORT_SUMMARY = "Call too short to analyze"


def clean_string(value) -> Optional[str]:
    """Drop empty and 'null'-like strings the model uses for unknown values"""
    if value is None:
        return None
    value = str(value).strip()
    if value.lower() in EMPTY_MARKERS:
        return None
    return value


def clean_vehicle_year(value) -> Optional[str]:
    """Keep a plausible 4-digit model year, or nothing"""
    if value is None:
        return None
    match = YEAR_PATTERN.search(str(value))
    if not match:
        return None
    year = int(match.group(0))
    if MIN_VEHICLE_YEAR <= year <= MAX_VEHICLE_YEAR:
        return match.group(0)
    return None


def _number(value, default=0):
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _clamp(value: float, low: int, high: int) -> int:
    return int(max(low, min(high, round(value))))


def _string_list(value) -> List[str]:
    if not isinstance(value, (list, tuple)):
        return []
    items = []
    for item in value:
        item = clean_string(item) if isinstance(item, str) else None
        if item:
            items.append(item)
    return items


class CustomerInfo(BaseModel):
    first_name: Optional[str] = Field(None, validation_alias=AliasChoices("first_name", "firstName"))
    last_name: Optional[str] = Field(None, validation_alias=AliasChoices("last_name", "lastName"))
    vehicle_year: Optional[str] = Field(None, validation_alias=AliasChoices("vehicle_year", "vehicleYear"))
    vehicle_make: Optional[str] = Field(None, validation_alias=AliasChoices("vehicle_make", "vehicleMake"))
    vehicle_model: Optional[str] = Field(None, validation_alias=AliasChoices("vehicle_model", "vehicleModel"))
    service_requested: Optional[str] = Field(
        None, validation_alias=AliasChoices("service_requested", "serviceRequested")
    )
    confidence: Confidence = "medium"

    @field_validator("first_name", "last_name", "vehicle_make", "vehicle_model", mode="before")
    @classmethod
    def clean_text(cls, v):
        return clean_string(v)

    @field_validator("vehicle_year", mode="before")
    @classmethod
    def clean_year(cls, v):
        return clean_vehicle_year(v)

    @field_validator("service_requested", mode="before")
    @classmethod
    def clean_service(cls, v):
        v = clean_string(v)
        return v[:SERVICE_MAX_LENGTH] if v else None

    @field_validator("confidence", mode="before")
    @classmethod
    def default_confidence(cls, v):
        v = str(v).strip().lower() if v is not None else ""
        return v if v in CONFIDENCES else "medium"


class PipelineInfo(BaseModel):
    status: str = DealStatus.NEW_INQUIRY.value
    title: str = "New Call Deal"
    deal_value: float = Field(0, validation_alias=AliasChoices("deal_value", "dealValue"))
    priority: str = Priority.MEDIUM.value
    confidence: int = Field(0, ge=0, le=100)

    @field_validator("status", mode="before")
    @classmethod
    def known_status(cls, v):
        v = str(v).strip().lower() if v is not None else ""
        return v if v in DEAL_STATUSES else DealStatus.NEW_INQUIRY.value

    @field_validator("priority", mode="before")
    @classmethod
    def known_priority(cls, v):
        v = str(v).strip().lower() if v is not None else ""
        return v if v in PRIORITIES else Priority.MEDIUM.value

    @field_validator("title", mode="before")
    @classmethod
    def default_title(cls, v):
        return clean_string(v) or "New Call Deal"

    @field_validator("deal_value", mode="before")
    @classmethod
    def non_negative_value(cls, v):
        return max(0.0, _number(v))

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v):
        return _clamp(_number(v), 0, 100)


class AnalysisResult(BaseModel):
    """Structured signals extracted from one call transcript"""
    rating: int = Field(0, ge=0, le=10)
    summary: str = ""
    next_actions: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices("next_actions", "nextActions")
    )
    tags: List[str] = Field(default_factory=list)
    customer_info: CustomerInfo = Field(
        default_factory=CustomerInfo, validation_alias=AliasChoices("customer_info", "customerInfo")
    )
    pipeline: PipelineInfo = Field(default_factory=PipelineInfo)
    confidence: Confidence = "high"
    # Set only on degraded results; never serialized
    error: Optional[str] = Field(None, exclude=True)

    @field_validator("rating", mode="before")
    @classmethod
    def clamp_rating(cls, v):
        return _clamp(_number(v), 0, 10)

    @field_validator("summary", mode="before")
    @classmethod
    def summary_text(cls, v):
        return str(v).strip() if v is not None else ""

    @field_validator("next_actions", "tags", mode="before")
    @classmethod
    def string_lists(cls, v):
        return _string_list(v)

    @field_validator("customer_info", "pipeline", mode="before")
    @classmethod
    def missing_section(cls, v):
        return v if isinstance(v, dict) or isinstance(v, BaseModel) else {}

    @classmethod
    def too_short(cls) -> "AnalysisResult":
        """Zero-signal result for transcripts with nothing to analyze"""
        return cls(
            rating=0,
            summary=TOO_SHORT_SUMMARY,
            customer_info=CustomerInfo(confidence="low"),
            pipeline=PipelineInfo(title="Unknown Call"),
            confidence="low"
        )

    @classmethod
    def degraded(cls, error: str) -> "AnalysisResult":
        """Result returned when the provider call or parsing failed"""
        return cls(
            rating=0,
            summary=f"Failed to analyze call. Error: {error}",
            error=error,
            customer_info=CustomerInfo(confidence="low"),
            pipeline=PipelineInfo(title="Analysis Failed", priority=Priority.LOW.value),
            confidence="low"
        )
