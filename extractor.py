"""
extractor.py — Best-effort plain-text extraction from uploaded resume bytes.

This is a lossy heuristic rather than a document parser: plain text passes
through, everything else is decoded as UTF-8 and scrubbed down to printable
ASCII. For PDFs that yield almost nothing, literal strings in parentheses are
scraped from the raw bytes instead. The function never raises.
"""

import re
from dataclasses import dataclass

from config import PDF_CONTENT_TYPES, TEXT_CONTENT_TYPE
from utils import logger

UNEXTRACTABLE_TEXT = "Unable to extract text content from this file format."

PDF_FALLBACK_THRESHOLD = 100

NON_PRINTABLE_PATTERN = re.compile(r"[^\x20-\x7E\n\r\t]")
WHITESPACE_PATTERN = re.compile(r"\s+")
PDF_LITERAL_PATTERN = re.compile(r"\(([^)]+)\)")


@dataclass
class ResumeFile:
    """An uploaded file as the analysis pipeline sees it."""

    file_name: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def _clean(text: str) -> str:
    text = NON_PRINTABLE_PATTERN.sub(" ", text)
    text = WHITESPACE_PATTERN.sub(" ", text)
    return text.strip()


def _scrape_pdf_literals(raw: str) -> str:
    return " ".join(PDF_LITERAL_PATTERN.findall(raw))


def extract_text(file: ResumeFile) -> str:
    """Return a plain-text approximation of the file, or UNEXTRACTABLE_TEXT."""
    if file.content_type == TEXT_CONTENT_TYPE:
        logger.info("Reading plain-text resume: %s", file.file_name)
        return _decode(file.data) or UNEXTRACTABLE_TEXT

    logger.info("Extracting text from %s (%s)", file.file_name, file.content_type)
    raw = _decode(file.data)
    text = _clean(raw)

    if len(text) < PDF_FALLBACK_THRESHOLD and file.content_type in PDF_CONTENT_TYPES:
        scraped = _scrape_pdf_literals(raw)
        if scraped:
            logger.debug("Using PDF literal-string fallback for %s", file.file_name)
            text = scraped

    if not text:
        logger.warning("No text could be extracted from %s", file.file_name)
        return UNEXTRACTABLE_TEXT
    return text
