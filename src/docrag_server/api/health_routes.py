from typing import Annotated

from fastapi import APIRouter, Depends

from .dependencies import get_orchestrator
from ..config import settings
from ..rag.orchestrator import RagOrchestrator

router = APIRouter(tags=["health"])

@router.get("/health")
def health(orchestrator: Annotated[RagOrchestrator, Depends(get_orchestrator)]):
    return {
        "status": "ok",
        "app": settings.app_name,
        "index": orchestrator.index.get_stats(),
    }
