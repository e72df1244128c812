"""
Document Text Extraction

Turns uploaded bytes into `ExtractedText`: plain text, structural metadata
and the tables detected in the text.

PDFs are parsed with pypdf. Images are delegated to an OCR callable supplied
by the deployment; no OCR engine ships with the service, so image extraction
fails with `ExtractionFailure` until one is configured.
"""

from __future__ import annotations

import io
import logging
import re
from typing import Any, Callable, Dict, List, Optional, Protocol

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from .models import ExtractedText, StructuralMetadata
from ..core.errors import ExtractionFailure, UnsupportedType

logger = logging.getLogger("docrag.extractor")

OcrFunction = Callable[[bytes], str]

SUPPORTED_TYPES = (
    "application/pdf",
    "image/jpeg",
    "image/png",
    "image/tiff",
    "image/bmp",
)

# Pipe-separated, tab-separated and space-aligned columns.
TABLE_PATTERNS = [
    re.compile(r"\|.*\|"),
    re.compile(r"\t.*\t"),
    re.compile(r"\s{2,}\w+\s{2,}\w+"),
]

# A pattern must match more than this many times to count as a table.
MIN_TABLE_ROWS = 2


class TextExtractor(Protocol):
    def extract(self, data: bytes, mime_type: str) -> ExtractedText:
        ...


def detect_text_tables(text: str) -> List[Dict[str, Any]]:
    """
    Find tables laid out in plain text.

    Every pattern with more than two matches yields one table whose content
    is the matched rows joined by newlines.
    """
    tables: List[Dict[str, Any]] = []

    for pattern in TABLE_PATTERNS:
        matches = pattern.findall(text)
        if len(matches) > MIN_TABLE_ROWS:
            tables.append(
                {
                    "id": len(tables) + 1,
                    "type": "text_table",
                    "content": "\n".join(matches),
                    "rows": len(matches),
                }
            )

    return tables


class DocumentExtractor:
    """
    Default `TextExtractor`: pypdf for PDFs, an injected OCR function for
    images.
    """

    def __init__(self, ocr: Optional[OcrFunction] = None) -> None:
        self._ocr = ocr

    def extract(self, data: bytes, mime_type: str) -> ExtractedText:
        """
        Extract text and structure from a document.

        Raises
        ------
        UnsupportedType
            If `mime_type` is not one of SUPPORTED_TYPES.
        ExtractionFailure
            If the document cannot be parsed or no OCR is configured.
        """
        mime_type = mime_type.split(";")[0].strip().lower()

        if mime_type not in SUPPORTED_TYPES:
            raise UnsupportedType(
                f"Unsupported file type: {mime_type}",
                {"mime_type": mime_type},
            )

        if mime_type == "application/pdf":
            return self._extract_pdf(data)
        return self._extract_image(data, mime_type)

    # ------------------------------------------------------------------
    # Internal Helpers
    # ------------------------------------------------------------------

    def _extract_pdf(self, data: bytes) -> ExtractedText:
        try:
            reader = PdfReader(io.BytesIO(data))
            pages = [page.extract_text() or "" for page in reader.pages]
        except (PyPdfError, ValueError, OSError) as exc:
            logger.error("PDF parsing failed: %s", exc)
            raise ExtractionFailure(
                f"Failed to process document: {exc}",
                {"mime_type": "application/pdf", "size": len(data)},
            ) from exc

        text = "\n\n".join(page.strip() for page in pages if page.strip())
        tables = detect_text_tables(text)

        logger.info("Extracted %d pages from PDF (%d chars)", len(pages), len(text))

        return ExtractedText(
            text=text,
            source_kind="pdf",
            metadata=StructuralMetadata(
                page_count=len(pages),
                word_count=len(text.split()),
                has_tables=bool(tables),
            ),
            tables=tables,
        )

    def _extract_image(self, data: bytes, mime_type: str) -> ExtractedText:
        if self._ocr is None:
            raise ExtractionFailure(
                "No OCR function is configured for image documents.",
                {"mime_type": mime_type},
            )

        try:
            text = self._ocr(data)
        except Exception as exc:
            logger.error("OCR failed for %s: %s", mime_type, exc)
            raise ExtractionFailure(
                f"Failed to process document: {exc}",
                {"mime_type": mime_type, "size": len(data)},
            ) from exc

        tables = detect_text_tables(text)

        return ExtractedText(
            text=text,
            source_kind="image",
            metadata=StructuralMetadata(
                page_count=1,
                word_count=len(text.split()),
                has_tables=bool(tables),
                has_images=True,
            ),
            tables=tables,
        )
