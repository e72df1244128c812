"""
API Models

Request and response schemas for the document, query and metrics endpoints.
Core result types (`IngestResult`, `QueryResponse`, `PerformanceReport`) are
returned as-is and are not redefined here.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, ConfigDict

from ..documents.models import SourceKind, StructuralMetadata
from ..rag.retriever import RetrievalFilters


class OperationResult(BaseModel):
    """
    Standardized mutation operation result.
    """
    status: Literal["deleted", "ok"]
    count: Optional[int] = Field(default=None, ge=0)
    details: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------

class IngestRequest(BaseModel):
    """
    Ingest already-extracted text.
    """
    document_id: Optional[str] = Field(default=None, min_length=1)
    text: str = Field(..., min_length=1)
    source_kind: SourceKind
    metadata: Optional[StructuralMetadata] = None
    visual_elements: List[Dict[str, Any]] = Field(default_factory=list)
    charts: List[Dict[str, Any]] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


class DocumentSummary(BaseModel):
    document_id: str
    source_kind: SourceKind
    chunk_count: int
    ingested_at: datetime
    metadata: StructuralMetadata

    model_config = ConfigDict(extra="forbid")


class DocumentDetail(DocumentSummary):
    indexed_chunks: int = Field(..., ge=0)
    content_types: List[str] = Field(default_factory=list)


# ---------------------------------------------------------------------
# Query
# ---------------------------------------------------------------------

class QueryRequest(BaseModel):
    query: str = Field(..., min_length=1)
    document_ids: Optional[List[str]] = None
    filters: Optional[RetrievalFilters] = None

    model_config = ConfigDict(extra="forbid")
