"""
Document Routes

This module exposes endpoints for:
- Ingesting pre-extracted text
- Uploading raw PDF or image documents for extraction and ingestion
- Listing, inspecting and deleting ingested documents

Typed core errors (unsupported type, extraction failure, unknown document)
are converted to HTTP responses by the global exception handlers.
"""

import logging
import uuid
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from starlette.concurrency import run_in_threadpool

from .dependencies import get_extractor, get_orchestrator
from .models import DocumentDetail, DocumentSummary, IngestRequest, OperationResult
from ..documents.extractor import DocumentExtractor
from ..documents.models import Document
from ..rag.orchestrator import IngestResult, RagOrchestrator

logger = logging.getLogger("docrag.api.documents")

router = APIRouter(prefix="/documents", tags=["documents"])


# ---------------------------------------------------------------------
# Helper Functions
# ---------------------------------------------------------------------

def _new_document_id() -> str:
    return uuid.uuid4().hex


def _summary(document: Document) -> DocumentSummary:
    return DocumentSummary(
        document_id=document.document_id,
        source_kind=document.source_kind,
        chunk_count=document.chunk_count,
        ingested_at=document.ingested_at,
        metadata=document.metadata,
    )


# ---------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------

@router.post(
    "",
    response_model=IngestResult,
    summary="Ingest extracted document text",
)
async def ingest_document(
    req: IngestRequest,
    orchestrator: Annotated[RagOrchestrator, Depends(get_orchestrator)],
) -> IngestResult:
    """
    Chunk, embed and index text that was extracted elsewhere.
    """
    return await orchestrator.ingest(
        req.document_id or _new_document_id(),
        req.text,
        req.source_kind,
        metadata=req.metadata,
        visual_elements=req.visual_elements,
        charts=req.charts,
    )


@router.post(
    "/upload",
    response_model=IngestResult,
    summary="Upload and ingest a PDF or image",
)
async def upload_document(
    request: Request,
    orchestrator: Annotated[RagOrchestrator, Depends(get_orchestrator)],
    extractor: Annotated[DocumentExtractor, Depends(get_extractor)],
    content_type: Annotated[str, Header()] = "application/octet-stream",
    document_id: Annotated[Optional[str], Query(min_length=1)] = None,
) -> IngestResult:
    """
    Extract text from the raw request body and ingest it.

    The `Content-Type` header selects the extraction path. Extraction is
    CPU-bound and runs in the threadpool.
    """
    data = await request.body()
    extracted = await run_in_threadpool(extractor.extract, data, content_type)

    doc_id = document_id or _new_document_id()
    logger.info("Uploaded %s (%s, %d bytes)", doc_id, content_type, len(data))

    return await orchestrator.ingest_extracted(doc_id, extracted)


@router.get(
    "",
    response_model=List[DocumentSummary],
    summary="List ingested documents",
)
async def list_documents(
    orchestrator: Annotated[RagOrchestrator, Depends(get_orchestrator)],
) -> List[DocumentSummary]:
    return [_summary(doc) for doc in orchestrator.list_documents()]


@router.get(
    "/{document_id}",
    response_model=DocumentDetail,
    summary="Get one document with its index statistics",
)
async def get_document(
    document_id: str,
    orchestrator: Annotated[RagOrchestrator, Depends(get_orchestrator)],
) -> DocumentDetail:
    stats = orchestrator.document_stats(document_id)
    summary = _summary(stats["document"])
    return DocumentDetail(
        **summary.model_dump(),
        indexed_chunks=stats["indexed_chunks"],
        content_types=stats["content_types"],
    )


@router.delete(
    "/{document_id}",
    response_model=OperationResult,
    summary="Delete a document and its vectors",
)
async def delete_document(
    document_id: str,
    orchestrator: Annotated[RagOrchestrator, Depends(get_orchestrator)],
) -> OperationResult:
    removed = orchestrator.remove_document(document_id)
    return OperationResult(status="deleted", count=removed)
