"""Intermediate values passed between pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RawDocument:
    """Downloaded document body. Never empty."""

    content: bytes
    content_type: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.content:
            raise ValueError("RawDocument content must not be empty")

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class ExtractedText:
    """Plain text extracted from a document, with optional document metadata."""

    text: str
    title: Optional[str] = None
    page_count: Optional[int] = None
    source_format: str = "text"

    @property
    def length(self) -> int:
        return len(self.text)


__all__ = ["ExtractedText", "RawDocument"]
