"""Protocol definitions for the CV processing pipeline stages."""

from __future__ import annotations

from typing import Protocol

from ..schemas import StructuredProfile, WireModel
from .models import ExtractedText, RawDocument


class ContentFetcher(Protocol):
    """Retrieves a document body from the document store."""

    async def fetch(self, document_id: int) -> RawDocument:
        """Return the full, non-empty body or raise ``FetchError``."""


class TextExtractor(Protocol):
    """Turns a document buffer into plain text."""

    async def extract(self, content: bytes) -> ExtractedText:
        """Return the extracted text or raise ``ExtractionError``."""


class LanguageDetector(Protocol):
    """Resolves the dominant language of a text sample. Never fails."""

    async def detect(self, sample: str) -> str:
        ...


class StructuredExtractionClient(Protocol):
    """Asks the language model for the structured profile as raw JSON text."""

    async def extract_profile(self, text: str, language: str) -> str:
        """Return the model answer or raise ``ModelError``."""


class ResultParser(Protocol):
    """Parses raw model JSON into a profile, repairing field-level defects."""

    def parse(self, raw_json: str) -> StructuredProfile:
        ...


class ResultPublisher(Protocol):
    """Publishes an event on a logical channel and reports whether it was accepted."""

    async def publish(self, channel: str, event: WireModel) -> bool:
        ...
