"""Masking of the contact details a résumé header usually carries.

CV text mixes phone numbers with dates, year ranges and scores, so phone
candidates are matched loosely and then checked by digit count and shape.
When two findings overlap, the longer one wins: a phone number embedded in a
profile URL or an e-mail address is masked as part of that URL or address.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import List

_YEAR = re.compile(r"(?:19|20)\d{2}")


class ContactKind(str, Enum):
    EMAIL = "EMAIL"
    PROFILE_URL = "URL"
    PHONE = "PHONE"


@dataclass(frozen=True)
class ContactFinding:
    kind: ContactKind
    value: str
    start: int
    end: int

    @property
    def type(self) -> str:
        return self.kind.value

    def overlaps(self, other: ContactFinding) -> bool:
        return self.start < other.end and other.start < self.end


_EMAIL = re.compile(r"(?i)\b[A-Z0-9._%+-]+@[A-Z0-9-]+(?:\.[A-Z0-9-]+)*\.[A-Z]{2,}\b")
_PROFILE_URL = re.compile(
    r"(?i)\b(?:https?://)?(?:[a-z]{2,3}\.|www\.)?"
    r"(?:linkedin\.com|github\.com|gitlab\.com|stackoverflow\.com|xing\.com)/[^\s,;<>\"')]+"
)
# +33 6 12 34 56 78, 06.12.34.56.78, (555) 123-4567
_PHONE_CANDIDATE = re.compile(r"(?<![\w+/])\+?\(?\d[\d \t().-]{5,}\d(?![\w/])")

# Ties on span length go to the earlier kind.
_PRIORITY = {ContactKind.EMAIL: 0, ContactKind.PROFILE_URL: 1, ContactKind.PHONE: 2}


def looks_like_dates(candidate: str) -> bool:
    """True for ``2015 - 2019`` or ``09.2019 - 06.2022`` style period notations."""

    groups = re.findall(r"\d+", candidate)
    has_year = False
    for group in groups:
        if _YEAR.fullmatch(group):
            has_year = True
        elif len(group) > 2:
            return False
    return has_year


class ContactDetailFilter:
    """Finds e-mail addresses, phone numbers and public profile URLs in CV text."""

    def __init__(self, *, min_phone_digits: int = 8, max_phone_digits: int = 15) -> None:
        self._min_digits = min_phone_digits
        self._max_digits = max_phone_digits

    def _phones(self, text: str) -> List[ContactFinding]:
        found: List[ContactFinding] = []
        for match in _PHONE_CANDIDATE.finditer(text):
            value = match.group()
            digits = sum(char.isdigit() for char in value)
            if not self._min_digits <= digits <= self._max_digits:
                continue
            if not value.startswith("+") and looks_like_dates(value):
                continue
            found.append(ContactFinding(ContactKind.PHONE, value, *match.span()))
        return found

    def candidates(self, text: str) -> List[ContactFinding]:
        found = [
            ContactFinding(ContactKind.EMAIL, m.group(), *m.span()) for m in _EMAIL.finditer(text)
        ]
        for match in _PROFILE_URL.finditer(text):
            value = match.group().rstrip(".")
            start = match.start()
            found.append(ContactFinding(ContactKind.PROFILE_URL, value, start, start + len(value)))
        found.extend(self._phones(text))
        return found

    def detect(self, text: str) -> List[ContactFinding]:
        """Return non-overlapping findings ordered by position."""

        ranked = sorted(
            self.candidates(text),
            key=lambda f: (-(f.end - f.start), _PRIORITY[f.kind], f.start),
        )
        kept: List[ContactFinding] = []
        for finding in ranked:
            if not any(finding.overlaps(other) for other in kept):
                kept.append(finding)
        kept.sort(key=lambda f: f.start)
        return kept

    def redact(
        self, text: str, *, label_format: str = "[REDACTED:{type}]"
    ) -> tuple[str, List[ContactFinding]]:
        findings = self.detect(text)
        if not findings:
            return text, []

        pieces: list[str] = []
        cursor = 0
        for finding in findings:
            pieces.append(text[cursor : finding.start])
            pieces.append(label_format.format(type=finding.type))
            cursor = finding.end
        pieces.append(text[cursor:])
        return "".join(pieces), findings


_DEFAULT_FILTER = ContactDetailFilter()


def preview(text: str, limit: int = 100) -> str:
    """Single-line, redacted excerpt of ``text`` for debug logs."""

    excerpt = " ".join(text[:limit].split())
    redacted, _ = _DEFAULT_FILTER.redact(excerpt)
    return redacted


__all__ = ["ContactDetailFilter", "ContactFinding", "ContactKind", "looks_like_dates", "preview"]
