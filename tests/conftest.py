"""Global test fixtures and environment setup."""

from __future__ import annotations

import io
import json
import os
from typing import Any, Callable, Iterable

import pytest

# Keep tests independent of any developer .env and of the production API key check.
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LANGUAGE_LOAD_ON_STARTUP", "0")
os.environ.setdefault("PUBLISHER_BACKEND", "memory")

FRENCH_CV_LINES = [
    "Marie Dubois",
    "Ingenieure logiciel senior",
    "Experience professionnelle",
    "Depuis 2019 : responsable de l'equipe de developpement chez une grande banque a Paris.",
    "Conception et mise en place d'une plateforme de paiement pour les clients de la banque.",
    "De 2015 a 2019 : developpeuse Java dans une entreprise de services numeriques a Lyon.",
    "Formation",
    "Diplome d'ingenieur en informatique, Ecole des Mines de Nantes, 2015.",
    "Competences : Java, Python, bases de donnees, gestion de projet et communication.",
    "Langues : francais (langue maternelle), anglais (courant).",
]


def _pdf_escape(text: str) -> str:
    return text.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")


def build_pdf(
    lines: Iterable[str], *, title: str = "Curriculum Vitae", min_size: int = 0
) -> bytes:
    """Write a single-page Helvetica PDF with a valid cross-reference table."""

    operations = ["BT", "/F1 11 Tf", "14 TL", "50 760 Td"]
    for line in lines:
        operations.append(f"({_pdf_escape(line)}) Tj T*")
    operations.append("ET")
    stream = "\n".join(operations).encode("latin-1")

    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] /Contents 4 0 R "
        b"/Resources << /Font << /F1 5 0 R >> >> >>",
        b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica /Encoding /WinAnsiEncoding >>",
        b"<< /Title (" + _pdf_escape(title).encode("latin-1") + b") /Producer (tests) >>",
    ]
    if min_size:
        padding = b"0" * min_size
        objects.append(b"<< /Length %d >>\nstream\n" % len(padding) + padding + b"\nendstream")

    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += b"%d 0 obj\n" % number + body + b"\nendobj\n"
    xref_offset = len(out)
    out += b"xref\n0 %d\n" % (len(objects) + 1)
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += b"%010d 00000 n \n" % offset
    out += b"trailer\n<< /Size %d /Root 1 0 R /Info 6 0 R >>\n" % (len(objects) + 1)
    out += b"startxref\n%d\n%%%%EOF\n" % xref_offset
    return bytes(out)


def build_docx(paragraphs: Iterable[str], *, title: str = "", table: Iterable[Iterable[str]] = ()) -> bytes:
    import docx

    document = docx.Document()
    for paragraph in paragraphs:
        document.add_paragraph(paragraph)
    rows = [list(row) for row in table]
    if rows:
        grid = document.add_table(rows=len(rows), cols=len(rows[0]))
        for row_index, row in enumerate(rows):
            for col_index, value in enumerate(row):
                grid.cell(row_index, col_index).text = value
    if title:
        document.core_properties.title = title
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def model_answer(**ats_overrides: Any) -> dict[str, Any]:
    ats = {
        "overallScore": 78,
        "overallAssessment": "Profil solide avec une experience pertinente.",
        "strengths": ["Experience en equipe", "Competences techniques"],
        "weaknesses": ["Peu de certifications"],
        "recommendations": ["Ajouter des resultats chiffres"],
        "scoreBreakdown": {
            "formatScore": 16,
            "contentScore": 24,
            "skillsScore": 19,
            "experienceScore": 19,
            "scoreExplanation": "Bonne structure generale.",
        },
        "atsCompatibility": "GOOD",
        "missingKeywords": ["Kubernetes"],
        "improvementPriority": "MEDIUM",
    }
    ats.update(ats_overrides)
    return {
        "personalInfo": {"firstName": "Marie", "lastName": "Dubois"},
        "skills": ["Java", "Python"],
        "experiences": [
            {
                "company": "Banque",
                "position": "Responsable technique",
                "startDate": "2019",
                "endDate": "",
                "description": "Plateforme de paiement",
            }
        ],
        "educationHistory": [
            {"degree": "Ingenieur", "institution": "Mines de Nantes", "field": "Informatique", "year": "2015"}
        ],
        "certifications": [],
        "languages": [{"language": "Francais", "proficiency": "Natif"}],
        "seniorityLevel": "Senior",
        "yearsOfExperience": 9,
        "profileSummary": "Ingenieure logiciel senior.",
        "cvLanguage": "fr",
        "atsAnalysis": ats,
    }


def chat_completion(content: str, *, finish_reason: str = "stop") -> dict[str, Any]:
    return {
        "id": "cmpl-test",
        "object": "chat.completion",
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": finish_reason,
            }
        ],
    }


@pytest.fixture()
def pdf_factory() -> Callable[..., bytes]:
    return build_pdf


@pytest.fixture()
def docx_factory() -> Callable[..., bytes]:
    return build_docx


@pytest.fixture()
def french_cv_lines() -> list[str]:
    return list(FRENCH_CV_LINES)


@pytest.fixture()
def model_answer_factory() -> Callable[..., dict[str, Any]]:
    return model_answer


@pytest.fixture()
def chat_completion_body() -> Callable[..., dict[str, Any]]:
    def _build(payload: Any, **kwargs: Any) -> dict[str, Any]:
        content = payload if isinstance(payload, str) else json.dumps(payload)
        return chat_completion(content, **kwargs)

    return _build
