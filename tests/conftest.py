from typing import List, Sequence

import pytest

from docrag_server.embeddings.index import VectorIndex
from docrag_server.embeddings.models import RetrievalResult
from docrag_server.evaluation.engine import EvaluationEngine
from docrag_server.rag.orchestrator import RagOrchestrator
from docrag_server.rag.synthesizer import TemplateSynthesizer
from docrag_server.text import words

VOCAB = [
    "revenue",
    "costs",
    "grew",
    "fell",
    "table",
    "chart",
    "alpha",
    "beta",
    "gamma",
    "boom",
]


class VocabEmbedder:
    """
    One-hot bag-of-words over a fixed vocabulary, so tests control exactly
    which texts are similar.
    """

    def __init__(self, vocab: Sequence[str] = VOCAB):
        self.vocab = list(vocab)
        self.dimension = len(self.vocab)
        self.calls: List[List[str]] = []

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        vectors = []
        for text in texts:
            present = set(words(text))
            vectors.append([1.0 if term in present else 0.0 for term in self.vocab])
        return vectors


def make_result(
    similarity: float,
    content: str = "alpha",
    kind: str = "paragraph",
    document_id: str = "doc-1",
    chunk_id: int = 1,
) -> RetrievalResult:
    return RetrievalResult(
        document_id=document_id,
        chunk_id=chunk_id,
        content=content,
        kind=kind,
        similarity=similarity,
    )


@pytest.fixture
def embedder():
    return VocabEmbedder()


@pytest.fixture
def index():
    return VectorIndex(dimension=len(VOCAB))


@pytest.fixture
def evaluator():
    return EvaluationEngine(window=100)


@pytest.fixture
def orchestrator(embedder, index, evaluator):
    return RagOrchestrator(embedder, index, TemplateSynthesizer(), evaluator)
