"""
Error Model & Global Error Handling

This module defines the typed error hierarchy raised by the retrieval core and
the FastAPI exception handlers that turn those errors into HTTP responses.

Design Goals
------------
- Every failure the core surfaces carries a stable, machine-readable `kind`
- Never leak internal exception details to clients
- Always return deterministic error payloads
- Log full stack traces internally for debugging
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("docrag.errors")


# ---------------------------------------------------------------------
# Error Hierarchy
# ---------------------------------------------------------------------

class DocRagError(RuntimeError):
    """
    Base class for all errors surfaced by the retrieval core.

    Attributes
    ----------
    kind : str
        Stable identifier returned to API callers.

    status_code : int
        HTTP status used when the error reaches the API layer.

    public_message : str
        Generic, client-safe description of the failure.

    context : Dict[str, Any]
        Structured diagnostics (stage, ids, sizes). Logged, never returned.
    """

    kind: str = "internal_error"
    status_code: int = 500
    public_message: str = "Request processing failed"

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.context: Dict[str, Any] = dict(context or {})


class UnsupportedType(DocRagError):
    """Raised for document MIME types the extractor does not handle."""

    kind = "unsupported_type"
    status_code = 415
    public_message = "Unsupported document type"


class DimensionMismatch(DocRagError):
    """Raised when an embedding length differs from the index dimension."""

    kind = "dimension_mismatch"
    status_code = 500
    public_message = "Embedding dimension mismatch"


class EmptySelection(DocRagError):
    """Raised when a query has no eligible documents to search."""

    kind = "empty_selection"
    status_code = 409
    public_message = "No documents available for this query"


class ExtractionFailure(DocRagError):
    """Raised when text extraction from a document fails."""

    kind = "extraction_failure"
    status_code = 422
    public_message = "Document processing failed"


class EmbeddingFailure(DocRagError):
    """Raised when the embedding provider fails or returns malformed output."""

    kind = "embedding_failure"
    status_code = 502
    public_message = "Embedding generation failed"


class SynthesisFailure(DocRagError):
    """Raised when the answer synthesizer fails."""

    kind = "synthesis_failure"
    status_code = 502
    public_message = "Query processing failed"


class NotFound(DocRagError):
    """Raised when an unknown document or chunk id is referenced."""

    kind = "not_found"
    status_code = 404
    public_message = "Resource not found"


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

async def docrag_error_handler(
    request: Request,
    exc: DocRagError,
) -> JSONResponse:
    """
    Convert a typed core error into a deterministic JSON response.

    The payload exposes the error kind and a generic message only; the
    original message and its context are logged.
    """
    logger.warning(
        "%s during %s %s: %s context=%s",
        exc.kind,
        request.method,
        request.url.path,
        exc,
        exc.context,
    )

    payload: Dict[str, Any] = {
        "error": exc.kind,
        "detail": exc.public_message,
    }

    return JSONResponse(
        status_code=exc.status_code,
        content=payload,
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    Logs the full traceback and returns a generic 500 with no internal
    details.
    """

    # Log full traceback internally (never returned to client)
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    payload: Dict[str, Any] = {
        "error": "internal_server_error",
        "detail": "Internal server error",
    }

    return JSONResponse(
        status_code=500,
        content=payload,
    )
