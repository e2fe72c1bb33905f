"""Defensive parsing of the model answer into a :class:`StructuredProfile`."""

from __future__ import annotations

import json
import re
from typing import Any, Mapping

from ..errors import ParseError, ParseErrorCode
from ..logging import get_logger
from ..schemas import StructuredProfile

logger = get_logger(__name__)

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_BREAKDOWN_FIELDS = ("formatScore", "contentScore", "skillsScore", "experienceScore")


def clean_json_payload(raw: str) -> str:
    """Strip markdown fences and any prose around the outermost JSON object."""

    cleaned = _CODE_FENCE.sub("", raw.strip()).strip()
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start != -1 and end > start:
        return cleaned[start : end + 1]
    return cleaned


def ats_warnings(data: Mapping[str, Any]) -> list[str]:
    """Describe ATS analysis defects worth flagging; the profile is still accepted."""

    ats = data.get("atsAnalysis")
    if not isinstance(ats, Mapping):
        return ["atsAnalysis missing"]

    issues: list[str] = []
    score = ats.get("overallScore")
    if not isinstance(score, (int, float)) or isinstance(score, bool):
        issues.append("overallScore missing")
    elif not 0 <= score <= 100:
        issues.append(f"overallScore out of range: {score}")

    breakdown = ats.get("scoreBreakdown")
    if not isinstance(breakdown, Mapping):
        issues.append("scoreBreakdown missing")
    else:
        missing = [name for name in _BREAKDOWN_FIELDS if breakdown.get(name) is None]
        if missing:
            issues.append(f"scoreBreakdown incomplete: {', '.join(missing)}")

    if not ats.get("atsCompatibility"):
        issues.append("atsCompatibility missing")
    return issues


class ResultParser:
    """Parses model JSON; only a payload that is not a JSON object is fatal."""

    def parse(self, raw_json: str) -> StructuredProfile:
        if raw_json is None or not raw_json.strip():
            raise ParseError(ParseErrorCode.INVALID_JSON, "Model answer is empty")

        cleaned = clean_json_payload(raw_json)
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError as exc:
            raise ParseError(
                ParseErrorCode.INVALID_JSON,
                "Model answer is not valid JSON",
                details={"error": str(exc), "length": len(raw_json)},
            ) from exc
        if not isinstance(data, dict):
            raise ParseError(
                ParseErrorCode.INVALID_JSON,
                "Model answer is not a JSON object",
                details={"type": type(data).__name__},
            )

        for issue in ats_warnings(data):
            logger.warning("profile.ats_incomplete", issue=issue)

        profile = StructuredProfile.model_validate(data)
        logger.info(
            "profile.parsed",
            skills=len(profile.skills),
            experiences=len(profile.experiences),
            education=len(profile.education_history),
        )
        return profile


__all__ = ["ResultParser", "ats_warnings", "clean_json_payload"]
