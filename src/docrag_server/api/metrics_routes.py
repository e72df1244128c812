from typing import Annotated

from fastapi import APIRouter, Depends

from .dependencies import get_orchestrator
from .models import OperationResult
from ..evaluation.engine import PerformanceReport
from ..rag.orchestrator import RagOrchestrator

router = APIRouter(prefix="/metrics", tags=["metrics"])


@router.get(
    "/report",
    response_model=PerformanceReport,
    summary="Rolling answer quality and latency report",
)
async def get_report(
    orchestrator: Annotated[RagOrchestrator, Depends(get_orchestrator)],
) -> PerformanceReport:
    return orchestrator.get_aggregate_report()


@router.post(
    "/reset",
    response_model=OperationResult,
    summary="Clear the evaluation history",
)
async def reset_metrics(
    orchestrator: Annotated[RagOrchestrator, Depends(get_orchestrator)],
) -> OperationResult:
    orchestrator.reset_metrics()
    return OperationResult(status="ok")
