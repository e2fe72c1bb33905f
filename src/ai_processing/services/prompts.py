"""Prompt assets for the CV extraction and ATS analysis request."""

from __future__ import annotations

from typing import Optional

from ..constants import TRUNCATION_MARKER

_SYSTEM_POLICY = """
You are an expert ATS (Applicant Tracking System) and HR specialist with deep expertise in CV
analysis and recruitment. Your role is to:
1. Extract structured information from CVs while protecting personal data privacy
2. Provide comprehensive ATS-style analysis with scoring and recommendations
3. Act as a professional recruitment consultant offering actionable insights

IMPORTANT PRIVACY REQUIREMENTS:
- DO NOT extract or include personal contact information (email, phone, address)
- Only extract first name and last name for identification purposes
- Focus on professional qualifications, skills, and experience

ANALYSIS REQUIREMENTS:
- Provide an overall score out of 100 based on professional criteria
- Identify strengths and weaknesses with specific examples
- Offer concrete recommendations for improvement
- Assess ATS compatibility and suggest missing keywords
- Break down scoring by categories (format, content, skills, experience)

Adhere strictly to the requested JSON format and field names.
If information for a field is not found, use "" for strings, 0 for numbers, {{}} for objects and
empty arrays [] for lists.
Ensure the final output is ONLY the JSON object, without any introductory text, explanations, or
markdown formatting.{language_instruction}
Respond ONLY with the JSON object.
""".strip()

_LANGUAGE_DIRECTIVES = {
    "fr": "French",
    "en": "English",
}

_LANGUAGE_DIRECTIVE_TEMPLATE = (
    "\nIMPORTANT: Generate all text fields (descriptions, summary, ATS analysis, "
    "recommendations) in {language_name}."
)

_RESPONSE_SHAPE = """
{
  "personalInfo": {"firstName": "...", "lastName": "..."},
  "skills": ["...", "..."],
  "experiences": [{"company": "...", "position": "...", "startDate": "...", "endDate": "...", "description": "..."}],
  "educationHistory": [{"degree": "...", "institution": "...", "field": "...", "year": "..."}],
  "certifications": [{"name": "...", "issuer": "...", "date": "..."}],
  "languages": [{"language": "...", "proficiency": "..."}],
  "seniorityLevel": "...",
  "yearsOfExperience": ...,
  "profileSummary": "...",
  "cvLanguage": "...",
  "atsAnalysis": {
    "overallScore": ...,
    "overallAssessment": "...",
    "strengths": ["...", "..."],
    "weaknesses": ["...", "..."],
    "recommendations": ["...", "..."],
    "scoreBreakdown": {
      "formatScore": ...,
      "contentScore": ...,
      "skillsScore": ...,
      "experienceScore": ...,
      "scoreExplanation": "..."
    },
    "atsCompatibility": "...",
    "missingKeywords": ["...", "..."],
    "improvementPriority": "..."
  }
}
""".strip()

_SCORING_GUIDELINES = """
SCORING GUIDELINES:
- Overall Score (0-100): Comprehensive evaluation of the CV
- Format Score (0-20): Structure, readability, ATS-friendliness
- Content Score (0-30): Relevance, clarity, completeness
- Skills Score (0-25): Technical and soft skills presentation
- Experience Score (0-25): Professional experience quality and relevance
- ATS Compatibility: EXCELLENT (90-100), GOOD (70-89), FAIR (50-69), POOR (0-49)
- Improvement Priority: HIGH (score < 60), MEDIUM (60-79), LOW (80+)
""".strip()

_USER_TEMPLATE = """
Analyze the following CV content as an expert ATS system and provide comprehensive analysis in the
specified JSON format:

CV Content:
\"\"\"
{cv_text}
\"\"\"

Requested JSON Structure (IMPORTANT - Follow exactly):
{response_shape}

{scoring_guidelines}
""".strip()


def language_directive(language: Optional[str]) -> str:
    """Return the answer-language instruction for ``language`` or ``""`` when unsupported."""

    if not language:
        return ""
    name = _LANGUAGE_DIRECTIVES.get(language.strip().lower())
    if name is None:
        return ""
    return _LANGUAGE_DIRECTIVE_TEMPLATE.format(language_name=name)


def system_prompt(language: Optional[str]) -> str:
    return _SYSTEM_POLICY.format(language_instruction=language_directive(language))


def user_prompt(cv_text: str) -> str:
    return _USER_TEMPLATE.format(
        cv_text=cv_text,
        response_shape=_RESPONSE_SHAPE,
        scoring_guidelines=_SCORING_GUIDELINES,
    )


def truncate_for_prompt(text: str, max_chars: int) -> str:
    """Return ``text`` cut to ``max_chars`` with a marker appended when it was cut."""

    if len(text) <= max_chars:
        return text
    return text[:max_chars] + TRUNCATION_MARKER


__all__ = [
    "language_directive",
    "system_prompt",
    "truncate_for_prompt",
    "user_prompt",
]
