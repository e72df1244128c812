from functools import lru_cache

from ..config import Settings, settings
from ..documents.extractor import DocumentExtractor
from ..embeddings.embedder import EmbeddingProvider, build_embedder
from ..embeddings.index import VectorIndex
from ..evaluation.engine import EvaluationEngine
from ..llm.client import LLMClient
from ..rag.orchestrator import RagOrchestrator
from ..rag.synthesizer import AnswerSynthesizer, LLMSynthesizer, TemplateSynthesizer


@lru_cache
def get_settings() -> Settings:
    return settings


@lru_cache
def get_embedder() -> EmbeddingProvider:
    return build_embedder(get_settings())


@lru_cache
def get_index() -> VectorIndex:
    return VectorIndex(dimension=get_settings().embedding_dim)


@lru_cache
def get_evaluator() -> EvaluationEngine:
    return EvaluationEngine(window=get_settings().metrics_window)


@lru_cache
def get_synthesizer() -> AnswerSynthesizer:
    cfg = get_settings()
    if cfg.synthesizer == "llm":
        return LLMSynthesizer(LLMClient(), temperature=cfg.llm_temperature)
    return TemplateSynthesizer()


@lru_cache
def get_orchestrator() -> RagOrchestrator:
    cfg = get_settings()
    return RagOrchestrator(
        get_embedder(),
        get_index(),
        get_synthesizer(),
        get_evaluator(),
        min_similarity=cfg.min_similarity,
        search_limit=cfg.search_limit,
        top_k=cfg.top_k,
        max_context_chars=cfg.max_context_chars,
        chunk_max_chars=cfg.chunk_max_chars,
        image_sentences_per_chunk=cfg.image_sentences_per_chunk,
    )


@lru_cache
def get_extractor() -> DocumentExtractor:
    # Image uploads need an OCR function; none is bundled.
    return DocumentExtractor()
