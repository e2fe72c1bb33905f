"""Validation tests for the extraction prompt assets."""

from __future__ import annotations

import pytest

from ai_processing.services.prompts import (
    language_directive,
    system_prompt,
    truncate_for_prompt,
    user_prompt,
)


def test_system_prompt_states_privacy_and_json_rules() -> None:
    prompt = system_prompt(None)
    assert "DO NOT extract or include personal contact information" in prompt
    assert "{}" in prompt
    assert prompt.endswith("Respond ONLY with the JSON object.")
    assert "Generate all text fields" not in prompt


@pytest.mark.parametrize(("code", "name"), [("fr", "French"), ("EN", "English")])
def test_system_prompt_pins_answer_language(code: str, name: str) -> None:
    prompt = system_prompt(code)
    assert f"recommendations) in {name}." in prompt


@pytest.mark.parametrize("code", ["de", "", None])
def test_unsupported_language_adds_no_directive(code) -> None:
    assert language_directive(code) == ""


def test_user_prompt_embeds_cv_and_response_shape() -> None:
    prompt = user_prompt("John Smith {senior} engineer")
    assert '"""\nJohn Smith {senior} engineer\n"""' in prompt
    assert '"scoreBreakdown": {' in prompt
    assert "SCORING GUIDELINES:" in prompt
    assert "Improvement Priority: HIGH (score < 60)" in prompt


def test_truncate_for_prompt_appends_marker_only_when_cut() -> None:
    assert truncate_for_prompt("short", 10) == "short"
    assert truncate_for_prompt("x" * 12, 10) == "x" * 10 + "\n[... TRUNCATED ...]"
