"""
Retrieval and Reranking

The retriever embeds the expanded query, searches the vector index, drops
candidates below the similarity floor or of the wrong content type, and
reorders what remains with lexical and content-type signals.

Rerank score
------------
    similarity
    + 0.2  * (fraction of query words present in the chunk)
    + 0.1  * (1 if the query mentions "table" and the chunk is visual context)
    + 0.05 * max(0, 1 - |len(content) - 300| / 1000)
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .query_processor import QueryContext
from ..core.errors import DocRagError, EmbeddingFailure
from ..documents.models import ChunkKind
from ..embeddings.embedder import EmbeddingProvider
from ..embeddings.index import VectorIndex
from ..embeddings.models import RetrievalResult
from ..text import words

logger = logging.getLogger("docrag.retriever")

DEFAULT_MIN_SIMILARITY = 0.3

OVERLAP_WEIGHT = 0.2
TYPE_BONUS_WEIGHT = 0.1
LENGTH_WEIGHT = 0.05
IDEAL_CHUNK_LENGTH = 300
LENGTH_FALLOFF = 1000


class RetrievalFilters(BaseModel):
    """
    Caller-supplied retrieval constraints.

    `min_similarity` replaces the configured floor for this request, in
    either direction.
    """

    min_similarity: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    content_type: Optional[ChunkKind] = None

    model_config = ConfigDict(extra="forbid", frozen=True)


# ---------------------------------------------------------------------
# Reranking
# ---------------------------------------------------------------------

def keyword_overlap(query: str, content: str) -> float:
    query_words = words(query)
    if not query_words:
        return 0.0
    content_words = set(words(content))
    matches = sum(1 for word in query_words if word in content_words)
    return matches / len(query_words)


def type_bonus(query: str, kind: str) -> float:
    return 1.0 if "table" in query.lower() and kind == "visual_context" else 0.0


def length_score(content: str) -> float:
    return max(0.0, 1.0 - abs(len(content) - IDEAL_CHUNK_LENGTH) / LENGTH_FALLOFF)


def rerank(query: str, results: Iterable[RetrievalResult]) -> List[RetrievalResult]:
    """
    Score each result against the raw query and sort by score descending.

    The sort is stable: equal scores keep their similarity order.
    """
    scored = [
        result.model_copy(
            update={
                "rerank_score": (
                    result.similarity
                    + OVERLAP_WEIGHT * keyword_overlap(query, result.content)
                    + TYPE_BONUS_WEIGHT * type_bonus(query, result.kind)
                    + LENGTH_WEIGHT * length_score(result.content)
                )
            }
        )
        for result in results
    ]
    return sorted(scored, key=lambda r: r.rerank_score, reverse=True)


# ---------------------------------------------------------------------
# Retriever
# ---------------------------------------------------------------------

class Retriever:
    """
    Candidate search plus reranking over a shared `VectorIndex`.
    """

    def __init__(
        self,
        embedder: EmbeddingProvider,
        index: VectorIndex,
        min_similarity: float = DEFAULT_MIN_SIMILARITY,
        search_limit: int = 10,
        top_k: int = 5,
    ) -> None:
        self._embedder = embedder
        self._index = index
        self.min_similarity = min_similarity
        self.search_limit = search_limit
        self.top_k = top_k

    async def embed_query(self, text: str) -> List[float]:
        """
        Embed a single query text.

        Raises
        ------
        EmbeddingFailure
            If the provider fails or returns the wrong number of vectors.
        """
        try:
            vectors = await self._embedder.embed([text])
        except DocRagError:
            raise
        except Exception as exc:
            raise EmbeddingFailure(
                f"Query embedding failed: {type(exc).__name__}",
            ) from exc

        if len(vectors) != 1:
            raise EmbeddingFailure(
                "Embedding provider returned an unexpected number of vectors.",
                {"expected": 1, "actual": len(vectors)},
            )
        return vectors[0]

    async def search(
        self,
        query_context: QueryContext,
        document_ids: Optional[Iterable[str]] = None,
        filters: Optional[RetrievalFilters] = None,
    ) -> List[RetrievalResult]:
        """
        Return filtered candidates in similarity order (not yet reranked).
        """
        filters = filters or RetrievalFilters()
        embedding = await self.embed_query(query_context.expanded_query)

        # Raises DimensionMismatch for a provider/index size disagreement.
        candidates = self._index.search(
            embedding,
            document_ids=document_ids,
            limit=self.search_limit,
        )

        floor = (
            filters.min_similarity
            if filters.min_similarity is not None
            else self.min_similarity
        )
        kept = [
            c
            for c in candidates
            if c.similarity >= floor
            and (filters.content_type is None or c.kind == filters.content_type)
        ]

        logger.debug(
            "Search returned %d candidates, %d above floor %.2f",
            len(candidates),
            len(kept),
            floor,
        )
        return kept

    def select(self, query: str, candidates: Iterable[RetrievalResult]) -> List[RetrievalResult]:
        """Rerank candidates and keep the best `top_k`."""
        return rerank(query, candidates)[: self.top_k]

    async def retrieve(
        self,
        query_context: QueryContext,
        document_ids: Optional[Iterable[str]] = None,
        filters: Optional[RetrievalFilters] = None,
    ) -> List[RetrievalResult]:
        candidates = await self.search(query_context, document_ids, filters)
        return self.select(query_context.query, candidates)
