"""
Document Data Models

This module defines the records produced on the write path: the structural
metadata of an extracted document, the document itself, and the chunks it is
split into before indexing.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal

from pydantic import BaseModel, Field, ConfigDict


SourceKind = Literal["pdf", "image"]
ChunkKind = Literal["paragraph", "visual_context"]


class StructuralMetadata(BaseModel):
    """
    Structural facts about an extracted document.
    """

    page_count: int = Field(default=0, ge=0)
    word_count: int = Field(default=0, ge=0)
    has_tables: bool = False
    has_images: bool = False
    has_charts: bool = False

    model_config = ConfigDict(extra="forbid", frozen=True)


class Chunk(BaseModel):
    """
    A single retrievable unit of document text.

    Chunk ids are sequential from 1 within their document; they are not
    globally unique.
    """

    id: int = Field(..., ge=1)
    content: str
    kind: ChunkKind
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid", frozen=True)


class Document(BaseModel):
    """
    An ingested document. Immutable once chunked.
    """

    document_id: str = Field(..., min_length=1)
    source_kind: SourceKind
    text: str
    metadata: StructuralMetadata = Field(default_factory=StructuralMetadata)
    chunk_count: int = Field(default=0, ge=0)
    ingested_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(extra="forbid", frozen=True)


class ExtractedText(BaseModel):
    """
    Output of a text extractor: text plus the visual elements and structure
    detected alongside it.
    """

    text: str
    source_kind: SourceKind
    metadata: StructuralMetadata
    tables: List[Dict[str, Any]] = Field(default_factory=list)
    charts: List[Dict[str, Any]] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid", frozen=True)
