"""
In-Memory Vector Index

This module implements the vector index that backs retrieval: a brute-force
cosine-similarity store keyed by `(document_id, chunk_id)`.

Key Properties
--------------
- Fixed, system-wide embedding dimensionality (mismatch is a hard error)
- Deterministic search: similarity descending, ties in insertion order
- Zero-magnitude vectors score 0 against anything
- Concurrency-safe (re-entrant lock, searches run on a snapshot)
- Explicit reset()
"""

from __future__ import annotations

import logging
from threading import RLock
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .models import RetrievalResult, VectorRecord
from ..core.errors import DimensionMismatch, NotFound
from ..documents.models import Chunk

logger = logging.getLogger("docrag.index")

RecordKey = Tuple[str, int]


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two equal-length vectors.

    Returns a value in [-1, 1]. If either vector has zero magnitude the
    similarity is defined as 0.
    """
    va = np.asarray(a, dtype="float64")
    vb = np.asarray(b, dtype="float64")

    if va.shape != vb.shape:
        raise DimensionMismatch(
            f"Cannot compare vectors of length {va.size} and {vb.size}.",
            {"left": int(va.size), "right": int(vb.size)},
        )

    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    return float(np.clip(np.dot(va, vb) / (norm_a * norm_b), -1.0, 1.0))


class VectorIndex:
    """
    Brute-force cosine index over chunk embeddings.

    This class is thread-safe; all access to the record map goes through an
    internal lock.
    """

    def __init__(self, dimension: int) -> None:
        """
        Parameters
        ----------
        dimension : int
            Length every stored and query embedding must have.
        """
        if dimension <= 0:
            raise ValueError("Index dimension must be positive.")

        self._dimension = dimension
        self._records: Dict[RecordKey, VectorRecord] = {}
        self._lock = RLock()

    # ------------------------------------------------------------------
    # Internal Helpers
    # ------------------------------------------------------------------

    def _check_dimension(self, embedding: Sequence[float], what: str) -> None:
        if len(embedding) != self._dimension:
            raise DimensionMismatch(
                f"{what} has dimension {len(embedding)}, index expects {self._dimension}.",
                {"expected": self._dimension, "actual": len(embedding)},
            )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def dimension(self) -> int:
        return self._dimension

    def upsert(
        self,
        document_id: str,
        chunk: Chunk,
        embedding: Sequence[float],
    ) -> VectorRecord:
        """
        Insert or replace the record at `(document_id, chunk.id)`.

        A replaced record keeps its original insertion position.

        Raises
        ------
        DimensionMismatch
            If the embedding length differs from the index dimension.
        """
        record = self.make_record(document_id, chunk, embedding)

        with self._lock:
            self._records[(document_id, chunk.id)] = record

        return record

    def make_record(
        self,
        document_id: str,
        chunk: Chunk,
        embedding: Sequence[float],
    ) -> VectorRecord:
        """Build a record for this index without storing it."""
        self._check_dimension(embedding, "Embedding")

        return VectorRecord(
            document_id=document_id,
            chunk_id=chunk.id,
            embedding=[float(x) for x in embedding],
            content=chunk.content,
            kind=chunk.kind,
            metadata=dict(chunk.metadata),
        )

    def replace_document(self, document_id: str, records: Sequence[VectorRecord]) -> int:
        """
        Swap every record of `document_id` for `records` in one step.

        Readers see either the old records or the new ones, never a mix.
        Returns the number of records removed.

        Raises
        ------
        DimensionMismatch
            If any record has the wrong dimension. Nothing is changed.
        ValueError
            If a record belongs to another document.
        """
        for record in records:
            if record.document_id != document_id:
                raise ValueError(
                    f"Record for {record.document_id!r} cannot replace {document_id!r}"
                )
            self._check_dimension(record.embedding, "Embedding")

        with self._lock:
            stale = [key for key in self._records if key[0] == document_id]
            for key in stale:
                del self._records[key]
            for record in records:
                self._records[(document_id, record.chunk_id)] = record

        return len(stale)

    def search(
        self,
        query_embedding: Sequence[float],
        document_ids: Optional[Iterable[str]] = None,
        limit: int = 10,
    ) -> List[RetrievalResult]:
        """
        Return the `limit` records most similar to the query embedding.

        Parameters
        ----------
        query_embedding : Sequence[float]
            Query vector; must match the index dimension.

        document_ids : Optional[Iterable[str]]
            If provided, only records of these documents are scored.

        limit : int
            Maximum number of results.

        Returns
        -------
        List[RetrievalResult]
            Sorted by similarity descending; equal similarities keep
            insertion order.
        """
        self._check_dimension(query_embedding, "Query embedding")

        allowed = set(document_ids) if document_ids is not None else None

        with self._lock:
            snapshot = [
                record
                for record in self._records.values()
                if allowed is None or record.document_id in allowed
            ]

        if not snapshot or limit <= 0:
            return []

        matrix = np.asarray([r.embedding for r in snapshot], dtype="float64")
        query = np.asarray(query_embedding, dtype="float64")

        norms = np.linalg.norm(matrix, axis=1)
        query_norm = float(np.linalg.norm(query))
        denominators = norms * query_norm

        dots = matrix @ query
        similarities = np.zeros(len(snapshot), dtype="float64")
        nonzero = denominators > 0
        similarities[nonzero] = dots[nonzero] / denominators[nonzero]
        similarities = np.clip(similarities, -1.0, 1.0)

        order = np.argsort(-similarities, kind="stable")[:limit]

        return [
            RetrievalResult(
                document_id=snapshot[i].document_id,
                chunk_id=snapshot[i].chunk_id,
                content=snapshot[i].content,
                kind=snapshot[i].kind,
                metadata=dict(snapshot[i].metadata),
                similarity=float(similarities[i]),
            )
            for i in order
        ]

    def delete_document(self, document_id: str) -> int:
        """
        Remove all records belonging to a document.

        Returns
        -------
        int
            Number of removed records.
        """
        with self._lock:
            keys = [key for key in self._records if key[0] == document_id]
            for key in keys:
                del self._records[key]

        if keys:
            logger.info("Removed %d records for document %s", len(keys), document_id)
        return len(keys)

    def document_ids(self) -> List[str]:
        """
        Return the ids of indexed documents in first-insertion order.
        """
        with self._lock:
            return list(dict.fromkeys(key[0] for key in self._records))

    def document_stats(self, document_id: str) -> dict:
        """
        Return chunk count and content kinds for one document.

        Raises
        ------
        NotFound
            If the document has no records.
        """
        with self._lock:
            records = [r for r in self._records.values() if r.document_id == document_id]

        if not records:
            raise NotFound(
                f"Document {document_id!r} is not indexed.",
                {"document_id": document_id},
            )

        return {
            "document_id": document_id,
            "chunks": len(records),
            "content_types": sorted({r.kind for r in records}),
        }

    def get_stats(self) -> dict:
        """
        Return index statistics for diagnostics.
        """
        with self._lock:
            return {
                "total_vectors": len(self._records),
                "total_documents": len({key[0] for key in self._records}),
                "dimension": self._dimension,
            }

    def reset(self) -> None:
        """
        Drop every record.
        """
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
