from __future__ import annotations

import copy
import functools
import json
from typing import Any

import pytest
from pydantic import BaseModel
from pydantic.alias_generators import to_snake

from ai_processing.errors import ParseError, ParseErrorCode
from ai_processing.pipeline.parser import ResultParser, ats_warnings, clean_json_payload
from ai_processing.schemas import AtsAnalysis, PersonalInfo, ScoreBreakdown, StructuredProfile


def test_clean_json_payload_strips_fences_and_prose() -> None:
    raw = 'Here is the analysis:\n```json\n{"skills": ["Java"]}\n```\nHope it helps.'

    assert clean_json_payload(raw) == '{"skills": ["Java"]}'


def test_parse_complete_answer(model_answer_factory) -> None:
    profile = ResultParser().parse(json.dumps(model_answer_factory()))

    assert profile.personal_info.first_name == "Marie"
    assert profile.skills == ["Java", "Python"]
    assert profile.experiences[0].company == "Banque"
    assert profile.education_history[0].year == "2015"
    assert profile.ats_analysis.overall_score == 78
    assert profile.ats_analysis.score_breakdown.content_score == 24
    assert profile.ats_analysis.ats_compatibility == "GOOD"
    assert profile.cv_language == "fr"


def test_parse_fenced_answer(model_answer_factory) -> None:
    raw = "```json\n" + json.dumps(model_answer_factory()) + "\n```"

    assert ResultParser().parse(raw).ats_analysis.overall_score == 78


@pytest.mark.parametrize("raw", ["", "   ", "not json", "{\"skills\": [", "[1, 2, 3]", "42"])
def test_non_object_answers_are_rejected(raw: str) -> None:
    with pytest.raises(ParseError) as excinfo:
        ResultParser().parse(raw)

    assert excinfo.value.code is ParseErrorCode.INVALID_JSON


PROFILE_FIELDS = [
    (("personalInfo",), PersonalInfo()),
    (("personalInfo", "firstName"), ""),
    (("personalInfo", "lastName"), ""),
    (("skills",), []),
    (("experiences",), []),
    (("educationHistory",), []),
    (("certifications",), []),
    (("languages",), []),
    (("seniorityLevel",), ""),
    (("yearsOfExperience",), 0),
    (("profileSummary",), ""),
    (("cvLanguage",), ""),
    (("atsAnalysis",), AtsAnalysis()),
    (("atsAnalysis", "overallScore"), 0),
    (("atsAnalysis", "overallAssessment"), ""),
    (("atsAnalysis", "strengths"), []),
    (("atsAnalysis", "weaknesses"), []),
    (("atsAnalysis", "recommendations"), []),
    (("atsAnalysis", "scoreBreakdown"), ScoreBreakdown()),
    (("atsAnalysis", "atsCompatibility"), ""),
    (("atsAnalysis", "missingKeywords"), []),
    (("atsAnalysis", "improvementPriority"), ""),
    (("atsAnalysis", "scoreBreakdown", "formatScore"), 0),
    (("atsAnalysis", "scoreBreakdown", "contentScore"), 0),
    (("atsAnalysis", "scoreBreakdown", "skillsScore"), 0),
    (("atsAnalysis", "scoreBreakdown", "experienceScore"), 0),
    (("atsAnalysis", "scoreBreakdown", "scoreExplanation"), ""),
]

_FIELD_IDS = [".".join(path) for path, _ in PROFILE_FIELDS]


def _parent(data: dict[str, Any], path: tuple[str, ...]) -> dict[str, Any]:
    for key in path[:-1]:
        data = data[key]
    return data


def _dump_path(path: tuple[str, ...]) -> tuple[str, ...]:
    return tuple(to_snake(key) for key in path)


def _expected_dump(baseline: dict[str, Any], path: tuple[str, ...], zero: Any) -> dict[str, Any]:
    expected = copy.deepcopy(baseline)
    snake = _dump_path(path)
    _parent(expected, snake)[snake[-1]] = zero.model_dump() if isinstance(zero, BaseModel) else zero
    return expected


def _wrong_value(zero: Any) -> Any:
    if isinstance(zero, BaseModel):
        return "not an object"
    if isinstance(zero, list):
        return "not a list"
    if isinstance(zero, int):
        return "many"
    return {"unexpected": "object"}


@pytest.mark.parametrize(("path", "zero"), PROFILE_FIELDS, ids=_FIELD_IDS)
def test_missing_field_takes_its_zero_value(model_answer_factory, path, zero) -> None:
    parser = ResultParser()
    data = model_answer_factory()
    baseline = parser.parse(json.dumps(data)).model_dump()
    _parent(data, path).pop(path[-1])

    profile = parser.parse(json.dumps(data))

    assert functools.reduce(getattr, _dump_path(path), profile) == zero
    assert profile.model_dump() == _expected_dump(baseline, path, zero)


@pytest.mark.parametrize(("path", "zero"), PROFILE_FIELDS, ids=_FIELD_IDS)
def test_wrongly_typed_field_takes_its_zero_value(model_answer_factory, path, zero) -> None:
    parser = ResultParser()
    data = model_answer_factory()
    baseline = parser.parse(json.dumps(data)).model_dump()
    _parent(data, path)[path[-1]] = _wrong_value(zero)

    profile = parser.parse(json.dumps(data))

    assert functools.reduce(getattr, _dump_path(path), profile) == zero
    assert profile.model_dump() == _expected_dump(baseline, path, zero)


def test_all_top_level_fields_missing_at_once(model_answer_factory) -> None:
    data = model_answer_factory()
    keys = [path[0] for path, _ in PROFILE_FIELDS if len(path) == 1]
    for key in keys:
        data.pop(key)

    assert data == {}
    assert ResultParser().parse(json.dumps(data)) == StructuredProfile()


def test_empty_object_yields_zero_valued_profile() -> None:
    profile = ResultParser().parse("{}")

    assert profile.skills == []
    assert profile.ats_analysis.overall_score == 0
    assert profile.ats_analysis.score_breakdown.skills_score == 0


def test_wrong_types_fall_back_to_defaults(model_answer_factory) -> None:
    data = model_answer_factory(overallScore="excellent", strengths="many")
    data["yearsOfExperience"] = "ten"
    data["skills"] = "Java, Python"

    profile = ResultParser().parse(json.dumps(data))

    assert profile.ats_analysis.overall_score == 0
    assert profile.ats_analysis.strengths == []
    assert profile.years_of_experience == 0
    assert profile.skills == []
    assert profile.personal_info.last_name == "Dubois"


def test_parse_is_idempotent(model_answer_factory) -> None:
    raw = json.dumps(model_answer_factory())
    parser = ResultParser()

    assert parser.parse(raw) == parser.parse(raw)


def test_ats_warnings_flag_incomplete_analysis(model_answer_factory) -> None:
    assert ats_warnings(model_answer_factory()) == []
    assert ats_warnings({}) == ["atsAnalysis missing"]

    data = model_answer_factory(overallScore=140, scoreBreakdown={"formatScore": 10})
    data["atsAnalysis"].pop("atsCompatibility")

    assert ats_warnings(data) == [
        "overallScore out of range: 140",
        "scoreBreakdown incomplete: contentScore, skillsScore, experienceScore",
        "atsCompatibility missing",
    ]
