"""Wire models for inbound document events and outbound profile events."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any, List, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    ValidatorFunctionWrapHandler,
    field_validator,
)
from pydantic.alias_generators import to_camel

from .constants import CV_DOCUMENT_TYPE, CV_PARSED_EVENT_TYPE, CV_UPLOADED_EVENT_TYPE


class WireModel(BaseModel):
    """Strict camelCase model used for events this service does not repair."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True, extra="ignore"
    )


class LenientModel(WireModel):
    """Model whose fields fall back to their zero value instead of failing validation.

    ``None`` or a value of the wrong type yields the field default (``""``, ``0``,
    ``[]`` or a zero-valued nested model). Booleans are never read as numbers or
    text. List elements that do not validate are dropped one by one, and
    fractional numbers are truncated for integer fields.
    """

    model_config = ConfigDict(coerce_numbers_to_str=True)

    @field_validator("*", mode="wrap")
    @classmethod
    def _default_when_invalid(
        cls, value: Any, handler: ValidatorFunctionWrapHandler, info: ValidationInfo
    ) -> Any:
        default = cls.model_fields[info.field_name].get_default(call_default_factory=True)
        if value is None:
            return default
        if isinstance(value, bool) and not isinstance(default, bool):
            return default
        try:
            return handler(value)
        except ValidationError:
            pass

        if isinstance(value, float) and math.isfinite(value):
            try:
                return handler(int(value))
            except ValidationError:
                pass
        if isinstance(value, list) and isinstance(default, list):
            kept: list[Any] = []
            for item in value:
                try:
                    kept.extend(handler([item]))
                except ValidationError:
                    continue
            return kept
        return default


class DocumentReference(WireModel):
    """Identifies the uploaded document and the person it belongs to."""

    document_id: int
    subject_id: str = Field(
        validation_alias=AliasChoices("subjectId", "keycloakId", "subject_id"),
        serialization_alias="subjectId",
    )


class DocumentEvent(DocumentReference):
    """Inbound upload notification."""

    document_type: str = CV_DOCUMENT_TYPE

    @property
    def is_cv(self) -> bool:
        return self.document_type.strip().upper() == CV_DOCUMENT_TYPE


class PersonalInfo(LenientModel):
    first_name: str = ""
    last_name: str = ""


class Experience(LenientModel):
    company: str = ""
    position: str = ""
    start_date: str = ""
    end_date: str = ""
    description: str = ""


class Education(LenientModel):
    degree: str = ""
    institution: str = ""
    field: str = ""
    year: str = ""


class Certification(LenientModel):
    name: str = ""
    issuer: str = ""
    date: str = ""


class LanguageSkill(LenientModel):
    language: str = ""
    proficiency: str = ""


class ScoreBreakdown(LenientModel):
    format_score: int = 0
    content_score: int = 0
    skills_score: int = 0
    experience_score: int = 0
    score_explanation: str = ""


class AtsAnalysis(LenientModel):
    overall_score: int = 0
    overall_assessment: str = ""
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    score_breakdown: ScoreBreakdown = Field(default_factory=ScoreBreakdown)
    ats_compatibility: str = ""
    missing_keywords: List[str] = Field(default_factory=list)
    improvement_priority: str = ""


class ProcessingMetadata(LenientModel):
    document_id: str = ""
    model_used: str = ""
    processed_at: Optional[datetime] = None
    detected_language: str = ""


class StructuredProfile(LenientModel):
    """Profile extracted from a CV plus its ATS analysis.

    Identity and metadata fields are filled in by the pipeline after parsing;
    whatever the model echoes for them is overwritten.
    """

    event_type: str = CV_PARSED_EVENT_TYPE
    subject_id: str = ""
    document_id: int = 0
    personal_info: PersonalInfo = Field(default_factory=PersonalInfo)
    skills: List[str] = Field(default_factory=list)
    experiences: List[Experience] = Field(default_factory=list)
    education_history: List[Education] = Field(default_factory=list)
    certifications: List[Certification] = Field(default_factory=list)
    languages: List[LanguageSkill] = Field(default_factory=list)
    seniority_level: str = ""
    years_of_experience: int = 0
    profile_summary: str = ""
    cv_language: str = ""
    ats_analysis: AtsAnalysis = Field(default_factory=AtsAnalysis)
    ai_metadata: ProcessingMetadata = Field(default_factory=ProcessingMetadata)

    def to_event(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ProcessingFailedEvent(WireModel):
    """Notification emitted when a document could not be processed."""

    document_id: int
    subject_id: str
    original_event_type: str = CV_UPLOADED_EVENT_TYPE
    stage: str
    error_code: str
    error_message: str
    error_timestamp: datetime

    def to_event(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


__all__ = [
    "AtsAnalysis",
    "Certification",
    "DocumentEvent",
    "DocumentReference",
    "Education",
    "Experience",
    "LanguageSkill",
    "LenientModel",
    "PersonalInfo",
    "ProcessingFailedEvent",
    "ProcessingMetadata",
    "ScoreBreakdown",
    "StructuredProfile",
    "WireModel",
]
