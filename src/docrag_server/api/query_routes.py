from typing import Annotated

from fastapi import APIRouter, Depends

from .dependencies import get_orchestrator
from .models import QueryRequest
from ..rag.orchestrator import QueryResponse, RagOrchestrator

router = APIRouter(tags=["query"])


@router.post(
    "/query",
    response_model=QueryResponse,
    summary="Answer a question from the ingested documents",
)
async def query_documents(
    req: QueryRequest,
    orchestrator: Annotated[RagOrchestrator, Depends(get_orchestrator)],
) -> QueryResponse:
    """
    Retrieve, rerank and synthesize an answer, then score it.

    Returns 409 `empty_selection` when no indexed document is eligible.
    """
    return await orchestrator.query(
        req.query,
        document_ids=req.document_ids,
        filters=req.filters,
    )
