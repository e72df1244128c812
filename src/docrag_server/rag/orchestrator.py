"""
RAG Orchestrator

Owns the write path (chunk -> embed -> index) and sequences the read path:

    received -> query_processed -> retrieved -> reranked
             -> context_built -> answered -> scored

A failing stage aborts the query. The typed error propagates unchanged with
the last completed stage recorded under `context["stage"]`; nothing is scored
for an aborted query.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from threading import RLock
from typing import Any, Dict, Iterable, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from .query_processor import QueryProcessor
from .retriever import RetrievalFilters, Retriever
from .synthesizer import AnswerSynthesizer, GeneratedAnswer
from ..core.errors import (
    DimensionMismatch,
    DocRagError,
    EmbeddingFailure,
    EmptySelection,
    NotFound,
)
from ..documents.chunker import chunk_text
from ..documents.models import Chunk, Document, ExtractedText, SourceKind, StructuralMetadata
from ..embeddings.embedder import EmbeddingProvider
from ..embeddings.index import VectorIndex
from ..embeddings.models import RetrievalResult, VectorRecord
from ..evaluation.engine import EvaluationEngine, EvaluationRecord, PerformanceReport

logger = logging.getLogger("docrag.orchestrator")
ingest_logger = logging.getLogger("docrag.ingest")

DEFAULT_MAX_CONTEXT_CHARS = 4000

SIMILARITY_WEIGHT = 0.6
CONFIDENCE_WEIGHT = 0.4


class QueryStage(str, Enum):
    RECEIVED = "received"
    QUERY_PROCESSED = "query_processed"
    RETRIEVED = "retrieved"
    RERANKED = "reranked"
    CONTEXT_BUILT = "context_built"
    ANSWERED = "answered"
    SCORED = "scored"


# ---------------------------------------------------------------------
# Result Models
# ---------------------------------------------------------------------

class ChunkError(BaseModel):
    chunk_id: int
    error: str
    message: str

    model_config = ConfigDict(extra="forbid", frozen=True)


class IngestResult(BaseModel):
    """
    Outcome of ingesting one document. Partial success is reported through
    `chunks_failed` and `errors`.
    """

    document_id: str
    chunks_stored: int = Field(..., ge=0)
    chunks_failed: int = Field(..., ge=0)
    errors: List[ChunkError] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid", frozen=True)


class SourceItem(BaseModel):
    document_id: str
    chunk_id: int
    content: str
    kind: str
    similarity: float
    rerank_score: Optional[float] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid", frozen=True)


class QueryResponse(BaseModel):
    answer: GeneratedAnswer
    sources: List[SourceItem]
    relevance_score: float
    metrics: EvaluationRecord
    latency_ms: float
    intent: str
    context: str

    model_config = ConfigDict(extra="forbid", frozen=True)


# ---------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------

def build_context(
    results: Sequence[RetrievalResult],
    max_chars: int = DEFAULT_MAX_CONTEXT_CHARS,
) -> str:
    """
    Concatenate source blocks in rank order while they fit in `max_chars`.

    The first block that would overflow ends the context; blocks are never
    truncated.
    """
    parts: List[str] = []
    length = 0

    for result in results:
        block = f"Source: {result.kind}\n{result.content}\n\n"
        if length + len(block) > max_chars:
            break
        parts.append(block)
        length += len(block)

    return "".join(parts)


def relevance_score(selected: Sequence[RetrievalResult], answer: GeneratedAnswer) -> float:
    if not selected:
        return 0.0
    mean_similarity = sum(r.similarity for r in selected) / len(selected)
    return SIMILARITY_WEIGHT * mean_similarity + CONFIDENCE_WEIGHT * answer.confidence


# ---------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------

class RagOrchestrator:
    """
    Process-wide coordinator for ingestion, querying and evaluation.

    Parameters
    ----------
    embedder : EmbeddingProvider
        Used for both chunk and query embeddings.

    index : VectorIndex
        Shared vector index; its dimension must match the embedder's.

    synthesizer : AnswerSynthesizer
        Generates answers from the built context.

    evaluator : EvaluationEngine
        Receives one record per completed query.
    """

    def __init__(
        self,
        embedder: EmbeddingProvider,
        index: VectorIndex,
        synthesizer: AnswerSynthesizer,
        evaluator: EvaluationEngine,
        *,
        processor: Optional[QueryProcessor] = None,
        min_similarity: float = 0.3,
        search_limit: int = 10,
        top_k: int = 5,
        max_context_chars: int = DEFAULT_MAX_CONTEXT_CHARS,
        chunk_max_chars: int = 500,
        image_sentences_per_chunk: int = 3,
    ) -> None:
        self._embedder = embedder
        self._index = index
        self._synthesizer = synthesizer
        self._evaluator = evaluator
        self._processor = processor or QueryProcessor()
        self._retriever = Retriever(
            embedder,
            index,
            min_similarity=min_similarity,
            search_limit=search_limit,
            top_k=top_k,
        )
        self.max_context_chars = max_context_chars
        self.chunk_max_chars = chunk_max_chars
        self.image_sentences_per_chunk = image_sentences_per_chunk

        self._documents: Dict[str, Document] = {}
        self._lock = RLock()

    @property
    def index(self) -> VectorIndex:
        return self._index

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    async def _embed_chunk(self, chunk: Chunk) -> List[float]:
        try:
            vectors = await self._embedder.embed([chunk.content])
        except DocRagError:
            raise
        except Exception as exc:
            raise EmbeddingFailure(
                f"Chunk embedding failed: {type(exc).__name__}",
                {"chunk_id": chunk.id},
            ) from exc

        if len(vectors) != 1:
            raise EmbeddingFailure(
                "Embedding provider returned an unexpected number of vectors.",
                {"chunk_id": chunk.id, "expected": 1, "actual": len(vectors)},
            )
        return vectors[0]

    async def ingest(
        self,
        document_id: str,
        text: str,
        source_kind: SourceKind,
        metadata: Optional[StructuralMetadata] = None,
        visual_elements: Optional[List[Dict[str, Any]]] = None,
        charts: Optional[List[Dict[str, Any]]] = None,
    ) -> IngestResult:
        """
        Chunk, embed and index a document, replacing any earlier version.

        A chunk whose embedding or indexing fails is recorded in the result
        and skipped; the remaining chunks are still indexed.

        Every chunk is embedded before anything is written. The index and
        the document registry are then swapped together with no await in
        between, so a cancelled ingest leaves the previous version intact.
        """
        chunks = chunk_text(
            text,
            source_kind,
            visual_elements=visual_elements,
            charts=charts,
            max_chars=self.chunk_max_chars,
            sentences_per_chunk=self.image_sentences_per_chunk,
        )

        records: List[VectorRecord] = []
        errors: List[ChunkError] = []

        for chunk in chunks:
            try:
                embedding = await self._embed_chunk(chunk)
                records.append(self._index.make_record(document_id, chunk, embedding))
            except (EmbeddingFailure, DimensionMismatch) as exc:
                ingest_logger.warning(
                    "Chunk %d of %s not indexed (%s): %s",
                    chunk.id,
                    document_id,
                    exc.kind,
                    exc,
                )
                errors.append(ChunkError(chunk_id=chunk.id, error=exc.kind, message=str(exc)))

        if metadata is None:
            metadata = StructuralMetadata(
                page_count=1 if source_kind == "image" else 0,
                word_count=len(text.split()),
                has_tables=bool(visual_elements),
                has_images=source_kind == "image",
                has_charts=bool(charts),
            )

        document = Document(
            document_id=document_id,
            source_kind=source_kind,
            text=text,
            metadata=metadata,
            chunk_count=len(chunks),
        )
        with self._lock:
            self._index.replace_document(document_id, records)
            self._documents[document_id] = document

        stored = len(records)
        ingest_logger.info(
            "Ingested %s: %d chunks stored, %d failed",
            document_id,
            stored,
            len(errors),
        )

        return IngestResult(
            document_id=document_id,
            chunks_stored=stored,
            chunks_failed=len(errors),
            errors=errors,
        )

    async def ingest_extracted(self, document_id: str, extracted: ExtractedText) -> IngestResult:
        return await self.ingest(
            document_id,
            extracted.text,
            extracted.source_kind,
            metadata=extracted.metadata,
            visual_elements=extracted.tables,
            charts=extracted.charts,
        )

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    def build_context(self, results: Sequence[RetrievalResult]) -> str:
        return build_context(results, self.max_context_chars)

    def _eligible_documents(self, document_ids: Optional[Iterable[str]]) -> List[str]:
        """
        Indexed documents a query may search, in index order.

        Registered documents without indexed chunks are skipped. Ids that
        are neither registered nor indexed raise NotFound.
        """
        indexed = self._index.document_ids()
        if document_ids is None:
            return indexed

        wanted = list(dict.fromkeys(document_ids))
        with self._lock:
            unknown = [
                doc_id for doc_id in wanted
                if doc_id not in self._documents and doc_id not in indexed
            ]
        if unknown:
            raise NotFound(
                f"Unknown documents: {', '.join(unknown)}",
                {"document_ids": unknown},
            )

        selected = set(wanted)
        return [doc_id for doc_id in indexed if doc_id in selected]

    async def query(
        self,
        text: str,
        document_ids: Optional[Iterable[str]] = None,
        filters: Optional[RetrievalFilters] = None,
    ) -> QueryResponse:
        """
        Answer a query from the indexed documents and score the answer.

        Raises
        ------
        EmptySelection
            If no indexed document is eligible for the query.
        NotFound
            If a requested document id is unknown.
        EmbeddingFailure, DimensionMismatch, SynthesisFailure
            Propagated from the failing stage.
        """
        started = time.perf_counter()
        stage = QueryStage.RECEIVED
        requested = None if document_ids is None else list(document_ids)

        try:
            query_context = self._processor.process(text)
            stage = QueryStage.QUERY_PROCESSED

            eligible = self._eligible_documents(requested)
            if not eligible:
                raise EmptySelection(
                    "No indexed documents match the query selection.",
                    {"requested": requested},
                )

            candidates = await self._retriever.search(query_context, eligible, filters)
            stage = QueryStage.RETRIEVED

            selected = self._retriever.select(text, candidates)
            stage = QueryStage.RERANKED

            context = self.build_context(selected)
            stage = QueryStage.CONTEXT_BUILT

            answer = await self._synthesizer.generate(text, context, query_context.intent)
            stage = QueryStage.ANSWERED

            relevance = relevance_score(selected, answer)
            latency_ms = (time.perf_counter() - started) * 1000.0

            record = self._evaluator.score(
                query=text,
                intent=query_context.intent,
                answer=answer,
                sources=selected,
                context=context,
                relevance_score=relevance,
                latency_ms=latency_ms,
            )
            stage = QueryStage.SCORED
        except DocRagError as exc:
            exc.context.setdefault("stage", stage.value)
            logger.warning("Query aborted after stage %s: %s", stage.value, exc)
            raise

        return QueryResponse(
            answer=answer,
            sources=[
                SourceItem(
                    document_id=r.document_id,
                    chunk_id=r.chunk_id,
                    content=r.content,
                    kind=r.kind,
                    similarity=r.similarity,
                    rerank_score=r.rerank_score,
                    metadata=dict(r.metadata),
                )
                for r in selected
            ],
            relevance_score=record.relevance_score,
            metrics=record,
            latency_ms=record.latency_ms,
            intent=query_context.intent,
            context=context,
        )

    # ------------------------------------------------------------------
    # Document bookkeeping
    # ------------------------------------------------------------------

    def get_document(self, document_id: str) -> Document:
        with self._lock:
            document = self._documents.get(document_id)
        if document is None:
            raise NotFound(
                f"Document {document_id!r} does not exist.",
                {"document_id": document_id},
            )
        return document

    def list_documents(self) -> List[Document]:
        with self._lock:
            return list(self._documents.values())

    def document_stats(self, document_id: str) -> Dict[str, Any]:
        """
        Registry entry plus index statistics for one document.
        """
        document = self.get_document(document_id)
        try:
            indexed = self._index.document_stats(document_id)
        except NotFound:
            indexed = {"chunks": 0, "content_types": []}

        return {
            "document": document,
            "indexed_chunks": indexed["chunks"],
            "content_types": indexed["content_types"],
        }

    def remove_document(self, document_id: str) -> int:
        """
        Forget a document and drop its vectors.

        Returns the number of removed index records.
        """
        with self._lock:
            known = self._documents.pop(document_id, None) is not None

        removed = self._index.delete_document(document_id)
        if not known and removed == 0:
            raise NotFound(
                f"Document {document_id!r} does not exist.",
                {"document_id": document_id},
            )
        return removed

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def get_aggregate_report(self) -> PerformanceReport:
        return self._evaluator.report()

    def reset_metrics(self) -> None:
        self._evaluator.reset()
