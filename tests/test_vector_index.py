import math

import pytest

from docrag_server.core.errors import DimensionMismatch, NotFound
from docrag_server.documents.models import Chunk
from docrag_server.embeddings.index import VectorIndex, cosine_similarity
from docrag_server.embeddings.models import VectorRecord


def _chunk(chunk_id: int, content: str = "text", kind: str = "paragraph") -> Chunk:
    return Chunk(id=chunk_id, content=content, kind=kind)


class TestCosineSimilarity:
    """Bounds and degenerate cases of cosine similarity."""

    def test_self_similarity_is_one(self):
        assert cosine_similarity([0.3, 0.4, 0.5], [0.3, 0.4, 0.5]) == pytest.approx(1.0)

    def test_opposite_vectors(self):
        assert cosine_similarity([1.0, 2.0], [-1.0, -2.0]) == pytest.approx(-1.0)

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_zero_vector_scores_zero(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0
        assert cosine_similarity([0.0, 0.0], [0.0, 0.0]) == 0.0

    def test_length_mismatch_raises(self):
        with pytest.raises(DimensionMismatch):
            cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])


class TestVectorIndex:
    """Storage, search ordering and bookkeeping."""

    def test_upsert_rejects_wrong_dimension(self):
        index = VectorIndex(dimension=3)

        with pytest.raises(DimensionMismatch):
            index.upsert("doc", _chunk(1), [1.0, 0.0])

        assert len(index) == 0

    def test_search_rejects_wrong_query_dimension(self):
        index = VectorIndex(dimension=3)
        index.upsert("doc", _chunk(1), [1.0, 0.0, 0.0])

        with pytest.raises(DimensionMismatch):
            index.search([1.0, 0.0])

    def test_results_sorted_by_similarity(self):
        index = VectorIndex(dimension=2)
        index.upsert("doc", _chunk(1, "far"), [0.0, 1.0])
        index.upsert("doc", _chunk(2, "near"), [1.0, 0.0])
        index.upsert("doc", _chunk(3, "middle"), [1.0, 1.0])

        results = index.search([1.0, 0.0])

        assert [r.content for r in results] == ["near", "middle", "far"]
        assert results[1].similarity == pytest.approx(1 / math.sqrt(2))
        assert all(r.rerank_score is None for r in results)

    def test_ties_keep_insertion_order(self):
        index = VectorIndex(dimension=2)
        for doc_id in ["c", "a", "b"]:
            index.upsert(doc_id, _chunk(1), [1.0, 1.0])

        results = index.search([1.0, 1.0])

        assert [r.document_id for r in results] == ["c", "a", "b"]

    def test_replacement_keeps_position(self):
        index = VectorIndex(dimension=2)
        index.upsert("first", _chunk(1, "old"), [1.0, 1.0])
        index.upsert("second", _chunk(1), [1.0, 1.0])
        index.upsert("first", _chunk(1, "new"), [1.0, 1.0])

        results = index.search([1.0, 1.0])

        assert len(index) == 2
        assert [(r.document_id, r.content) for r in results] == [
            ("first", "new"),
            ("second", "text"),
        ]

    def test_zero_vectors_score_zero(self):
        index = VectorIndex(dimension=2)
        index.upsert("doc", _chunk(1), [0.0, 0.0])

        assert index.search([1.0, 0.0])[0].similarity == 0.0
        assert index.search([0.0, 0.0])[0].similarity == 0.0

    def test_document_filter_and_limit(self):
        index = VectorIndex(dimension=2)
        for i in range(1, 4):
            index.upsert("keep", _chunk(i), [1.0, 0.0])
            index.upsert("skip", _chunk(i), [1.0, 0.0])

        filtered = index.search([1.0, 0.0], document_ids=["keep"])
        limited = index.search([1.0, 0.0], limit=2)

        assert {r.document_id for r in filtered} == {"keep"}
        assert len(filtered) == 3
        assert len(limited) == 2
        assert index.search([1.0, 0.0], document_ids=[]) == []

    def test_delete_document(self):
        index = VectorIndex(dimension=2)
        index.upsert("a", _chunk(1), [1.0, 0.0])
        index.upsert("a", _chunk(2), [1.0, 0.0])
        index.upsert("b", _chunk(1), [1.0, 0.0])

        assert index.delete_document("a") == 2
        assert index.delete_document("a") == 0
        assert index.document_ids() == ["b"]

    def test_replace_document_swaps_all_records(self):
        index = VectorIndex(dimension=2)
        for i in range(1, 4):
            index.upsert("a", _chunk(i, f"old {i}"), [1.0, 0.0])
        index.upsert("b", _chunk(1), [1.0, 0.0])

        removed = index.replace_document("a", [index.make_record("a", _chunk(1, "new"), [0.0, 1.0])])

        assert removed == 3
        assert index.document_stats("a")["chunks"] == 1
        assert [r.content for r in index.search([0.0, 1.0], document_ids=["a"])] == ["new"]
        assert index.document_stats("b")["chunks"] == 1

    def test_replace_document_rejects_bad_records_untouched(self):
        index = VectorIndex(dimension=2)
        index.upsert("a", _chunk(1, "old"), [1.0, 0.0])
        good = index.make_record("a", _chunk(1, "new"), [0.0, 1.0])
        short = VectorRecord(document_id="a", chunk_id=2, embedding=[1.0], content="x", kind="paragraph")

        with pytest.raises(DimensionMismatch):
            index.replace_document("a", [good, short])
        with pytest.raises(ValueError):
            index.replace_document("a", [index.make_record("b", _chunk(1), [1.0, 0.0])])

        assert [r.content for r in index.search([1.0, 0.0])] == ["old"]

    def test_make_record_checks_dimension(self):
        index = VectorIndex(dimension=3)

        with pytest.raises(DimensionMismatch):
            index.make_record("doc", _chunk(1), [1.0, 0.0])

        assert len(index) == 0

    def test_document_stats(self):
        index = VectorIndex(dimension=2)
        index.upsert("a", _chunk(1, kind="visual_context"), [1.0, 0.0])
        index.upsert("a", _chunk(2), [1.0, 0.0])

        stats = index.document_stats("a")

        assert stats["chunks"] == 2
        assert stats["content_types"] == ["paragraph", "visual_context"]
        with pytest.raises(NotFound):
            index.document_stats("missing")

    def test_get_stats_and_reset(self):
        index = VectorIndex(dimension=2)
        index.upsert("a", _chunk(1), [1.0, 0.0])
        index.upsert("b", _chunk(1), [0.0, 1.0])

        assert index.get_stats() == {"total_vectors": 2, "total_documents": 2, "dimension": 2}

        index.reset()

        assert len(index) == 0
        assert index.search([1.0, 0.0]) == []
