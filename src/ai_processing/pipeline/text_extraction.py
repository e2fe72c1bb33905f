"""Plain-text extraction from PDF, DOCX and text documents."""

from __future__ import annotations

import io
import zipfile
from concurrent.futures import Executor
from typing import Optional

import docx
from pdfminer.high_level import extract_text as pdf_extract_text
from pdfminer.pdfdocument import PDFDocument
from pdfminer.pdfpage import PDFPage
from pdfminer.pdfparser import PDFParser
from pdfminer.pdftypes import resolve1
from pdfminer.utils import decode_text

from ..errors import ExtractionError, ExtractionErrorCode
from ..logging import get_logger
from ..security.contact import preview
from ..util.concurrency import run_blocking
from .models import ExtractedText

logger = get_logger(__name__)

_PDF_MAGIC = b"%PDF"
_ZIP_MAGIC = b"PK\x03\x04"
_DOCX_MAIN_PART = "word/document.xml"


def sniff_format(content: bytes) -> str:
    """Return ``pdf``, ``docx``, ``text`` or ``unknown`` from the leading bytes."""

    head = content[:1024].lstrip()
    if head.startswith(_PDF_MAGIC):
        return "pdf"
    if content.startswith(_ZIP_MAGIC):
        try:
            with zipfile.ZipFile(io.BytesIO(content)) as archive:
                if _DOCX_MAIN_PART in archive.namelist():
                    return "docx"
        except zipfile.BadZipFile:
            return "unknown"
        return "unknown"
    if b"\x00" in head:
        return "unknown"
    try:
        content.decode("utf-8-sig")
    except UnicodeDecodeError:
        return "unknown"
    return "text"


def parse_pdf(content: bytes) -> ExtractedText:
    text = pdf_extract_text(io.BytesIO(content))

    stream = io.BytesIO(content)
    document = PDFDocument(PDFParser(stream))
    page_count = sum(1 for _ in PDFPage.create_pages(document))
    title = None
    for info in document.info:
        raw_title = resolve1(info.get("Title"))
        if isinstance(raw_title, bytes):
            title = decode_text(raw_title).strip() or None
        elif isinstance(raw_title, str):
            title = raw_title.strip() or None
        if title:
            break
    return ExtractedText(text=text, title=title, page_count=page_count, source_format="pdf")


def parse_docx(content: bytes) -> ExtractedText:
    document = docx.Document(io.BytesIO(content))
    blocks = [paragraph.text for paragraph in document.paragraphs if paragraph.text.strip()]
    for table in document.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                blocks.append(" | ".join(cells))
    title = (document.core_properties.title or "").strip() or None
    return ExtractedText(text="\n".join(blocks), title=title, source_format="docx")


def parse_text(content: bytes) -> ExtractedText:
    return ExtractedText(text=content.decode("utf-8-sig"), source_format="text")


_PARSERS = {"pdf": parse_pdf, "docx": parse_docx, "text": parse_text}


def parse_document(content: bytes) -> ExtractedText:
    """Detect the format of ``content`` and extract all of its text. Blocking."""

    fmt = sniff_format(content)
    parser = _PARSERS.get(fmt)
    if parser is None:
        raise ExtractionError(
            ExtractionErrorCode.PARSE_FAILURE,
            "Unsupported document format",
            details={"sizeBytes": len(content)},
        )
    try:
        return parser(content)
    except Exception as exc:
        raise ExtractionError(
            ExtractionErrorCode.PARSE_FAILURE,
            f"Failed to parse {fmt} document",
            details={"format": fmt, "error": f"{type(exc).__name__}: {exc}"},
        ) from exc


class DocumentTextExtractor:
    """Runs :func:`parse_document` on the bounded worker pool."""

    def __init__(self, executor: Optional[Executor] = None) -> None:
        self._executor = executor

    async def extract(self, content: bytes) -> ExtractedText:
        if not content:
            raise ExtractionError(
                ExtractionErrorCode.EMPTY_INPUT, "Cannot extract text from an empty buffer"
            )
        extracted = await run_blocking(self._executor, parse_document, content)
        if not extracted.text.strip():
            logger.warning(
                "text.extracted_blank", format=extracted.source_format, pages=extracted.page_count
            )
        logger.info(
            "text.extracted",
            format=extracted.source_format,
            textLength=extracted.length,
            title=extracted.title,
            pages=extracted.page_count,
        )
        logger.debug("text.preview", preview=preview(extracted.text))
        return extracted


__all__ = [
    "DocumentTextExtractor",
    "parse_document",
    "parse_docx",
    "parse_pdf",
    "parse_text",
    "sniff_format",
]
