import io

import pytest
from pypdf import PdfWriter

from docrag_server.core.errors import ExtractionFailure, UnsupportedType
from docrag_server.documents.extractor import DocumentExtractor, detect_text_tables


def _blank_pdf(pages: int = 1) -> bytes:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=72, height=72)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def test_unsupported_type_rejected():
    with pytest.raises(UnsupportedType):
        DocumentExtractor().extract(b"hello", "text/plain")


def test_pdf_page_count():
    extracted = DocumentExtractor().extract(_blank_pdf(pages=2), "application/pdf")

    assert extracted.source_kind == "pdf"
    assert extracted.metadata.page_count == 2
    assert extracted.text == ""


def test_mime_parameters_ignored():
    extracted = DocumentExtractor().extract(_blank_pdf(), "Application/PDF; charset=binary")
    assert extracted.metadata.page_count == 1


def test_corrupt_pdf_is_extraction_failure():
    with pytest.raises(ExtractionFailure):
        DocumentExtractor().extract(b"this is not a pdf", "application/pdf")


def test_image_without_ocr_fails():
    with pytest.raises(ExtractionFailure):
        DocumentExtractor().extract(b"\x89PNG", "image/png")


def test_image_uses_ocr_function():
    extractor = DocumentExtractor(ocr=lambda data: "Quarterly revenue chart. Costs fell")

    extracted = extractor.extract(b"\x89PNG", "image/png")

    assert extracted.source_kind == "image"
    assert extracted.text == "Quarterly revenue chart. Costs fell"
    assert extracted.metadata.has_images is True
    assert extracted.metadata.word_count == 5


def test_ocr_errors_are_wrapped():
    def broken_ocr(data: bytes) -> str:
        raise RuntimeError("engine crashed")

    with pytest.raises(ExtractionFailure):
        DocumentExtractor(ocr=broken_ocr).extract(b"img", "image/jpeg")


def test_pipe_tables_detected():
    text = "Header\n| q1 | 10 |\n| q2 | 12 |\n| q3 | 15 |\nFooter"

    tables = detect_text_tables(text)

    assert len(tables) == 1
    assert tables[0]["rows"] == 3
    assert tables[0]["type"] == "text_table"


def test_two_rows_are_not_a_table():
    assert detect_text_tables("| a | b |\n| c | d |") == []
