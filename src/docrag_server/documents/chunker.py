"""
Content-Aware Chunking

Splits extracted text into chunks using rules that depend on where the text
came from:

- PDF text keeps its paragraph structure; oversized paragraphs are split on
  sentence boundaries.
- OCR text from images is grouped into fixed windows of sentences, and every
  chunk carries the visual elements detected on the image.

`chunk_text` is a pure function of its inputs.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from .models import Chunk, SourceKind

PARAGRAPH_SEPARATOR = "\n\n"
SENTENCE_DELIMITER = ". "

DEFAULT_MAX_CHARS = 500
DEFAULT_SENTENCES_PER_CHUNK = 3


def _split_long_paragraph(paragraph: str, max_chars: int) -> List[str]:
    """
    Pack sentences into pieces of at most `max_chars` characters.

    A piece is flushed when appending the next sentence would exceed the
    limit. A sentence that is longer than the limit on its own becomes its own
    piece.
    """
    pieces: List[str] = []
    current = ""

    for sentence in paragraph.split(SENTENCE_DELIMITER):
        candidate = current + SENTENCE_DELIMITER + sentence if current else sentence
        if len(candidate) > max_chars and current.strip():
            pieces.append(current.strip())
            current = sentence
        else:
            current = candidate

    if current.strip():
        pieces.append(current.strip())

    return pieces


def _chunk_pdf(text: str, max_chars: int) -> List[Chunk]:
    chunks: List[Chunk] = []
    metadata = {"source_kind": "pdf", "chunk_type": "paragraph"}

    for paragraph in text.split(PARAGRAPH_SEPARATOR):
        if not paragraph.strip():
            continue

        if len(paragraph) > max_chars:
            pieces = _split_long_paragraph(paragraph, max_chars)
        else:
            pieces = [paragraph.strip()]

        for piece in pieces:
            chunks.append(
                Chunk(
                    id=len(chunks) + 1,
                    content=piece,
                    kind="paragraph",
                    metadata=dict(metadata),
                )
            )

    return chunks


def _chunk_image(
    text: str,
    sentences_per_chunk: int,
    visual_elements: Sequence[Dict[str, Any]],
    charts: Sequence[Dict[str, Any]],
) -> List[Chunk]:
    sentences = [s for s in text.split(SENTENCE_DELIMITER) if s.strip()]
    chunks: List[Chunk] = []

    for start in range(0, len(sentences), sentences_per_chunk):
        window = sentences[start : start + sentences_per_chunk]
        chunks.append(
            Chunk(
                id=len(chunks) + 1,
                content=SENTENCE_DELIMITER.join(window),
                kind="visual_context",
                metadata={
                    "source_kind": "image",
                    "chunk_type": "visual_context",
                    "visual_elements": list(visual_elements),
                    "charts": list(charts),
                },
            )
        )

    return chunks


def chunk_text(
    text: str,
    source_kind: SourceKind,
    *,
    visual_elements: Optional[Sequence[Dict[str, Any]]] = None,
    charts: Optional[Sequence[Dict[str, Any]]] = None,
    max_chars: int = DEFAULT_MAX_CHARS,
    sentences_per_chunk: int = DEFAULT_SENTENCES_PER_CHUNK,
) -> List[Chunk]:
    """
    Split extracted text into ordered chunks.

    Args:
        text: Extracted document text.
        source_kind: 'pdf' or 'image'.
        visual_elements: Tables detected on an image; attached to every chunk.
        charts: Charts detected on an image; attached to every chunk.
        max_chars: Paragraph length threshold for PDF text.
        sentences_per_chunk: Sentence window size for image text.

    Returns:
        Chunks with ids assigned sequentially from 1. Empty text yields an
        empty list.
    """
    if not text or not text.strip():
        return []

    if source_kind == "pdf":
        return _chunk_pdf(text, max_chars)

    if source_kind == "image":
        return _chunk_image(
            text,
            sentences_per_chunk,
            visual_elements or [],
            charts or [],
        )

    raise ValueError(f"Unknown source kind: {source_kind!r}")
