"""
Embedding Data Models

This module defines the canonical record stored in the vector index and the
result type returned by similarity search.

Each VectorRecord corresponds to ONE embedding vector and ONE chunk of text.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, ConfigDict

from ..documents.models import ChunkKind


class VectorRecord(BaseModel):
    """
    A single indexed chunk.

    This model is the authoritative schema for index storage. Records are
    written once per ingestion and never updated in place.
    """

    document_id: str = Field(
        ...,
        min_length=1,
        description="Identifier of the document this chunk belongs to.",
    )

    chunk_id: int = Field(
        ...,
        ge=1,
        description="Chunk identifier, unique within its document.",
    )

    embedding: List[float] = Field(
        ...,
        min_length=1,
        description="Embedding vector; length equals the index dimension.",
    )

    content: str = Field(
        ...,
        description="Copy of the chunk text.",
    )

    kind: ChunkKind = Field(
        ...,
        description="Chunk kind used for content-type filtering and reranking.",
    )

    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        description="Type-specific chunk metadata (e.g. visual elements).",
    )

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
    )


class RetrievalResult(BaseModel):
    """
    A search hit: the record's fields (without its vector), the cosine
    similarity to the query, and the rerank score once reranked.
    """

    document_id: str
    chunk_id: int
    content: str
    kind: ChunkKind
    metadata: Dict[str, Any] = Field(default_factory=dict)
    similarity: float = Field(..., ge=-1.0, le=1.0)
    rerank_score: Optional[float] = None

    model_config = ConfigDict(extra="forbid", frozen=True)
