"""
Answer Quality Evaluation

Scores every query/answer pair with retrieval-grounded quality metrics and
keeps the history needed for rolling performance reports.

Metrics
-------
- faithfulness: share of answer words that are grounded in the context
  (only words longer than three characters can count as grounded)
- answer_relevancy: mean of source similarity and answer confidence
- context_recall: share of sources with similarity above 0.7
- context_precision: rank-weighted precision over sources with similarity
  above 0.5, normalised by the number of such sources

Every metric lies in [0, 1].
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from threading import RLock
from typing import Dict, List, Sequence

from pydantic import BaseModel, ConfigDict, Field

from ..embeddings.models import RetrievalResult
from ..rag.synthesizer import GeneratedAnswer
from ..text import words

logger = logging.getLogger("docrag.evaluation")

HIGH_QUALITY_SIMILARITY = 0.7
RELEVANT_SIMILARITY = 0.5
MIN_GROUNDED_WORD_LENGTH = 4

FAST_LATENCY_MS = 1000
MEDIUM_LATENCY_MS = 3000


# ---------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------

class EvaluationRecord(BaseModel):
    query: str
    intent: str
    latency_ms: float = Field(..., ge=0.0)
    relevance_score: float = Field(..., ge=0.0, le=1.0)
    sources_count: int = Field(..., ge=0)
    context_length: int = Field(..., ge=0)
    faithfulness: float = Field(..., ge=0.0, le=1.0)
    answer_relevancy: float = Field(..., ge=0.0, le=1.0)
    context_recall: float = Field(..., ge=0.0, le=1.0)
    context_precision: float = Field(..., ge=0.0, le=1.0)
    success: bool
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(extra="forbid", frozen=True)


class LatencyDistribution(BaseModel):
    fast: int = 0
    medium: int = 0
    slow: int = 0

    model_config = ConfigDict(extra="forbid", frozen=True)


class PerformanceReport(BaseModel):
    """
    Aggregates over the most recent `window_size` evaluation records.
    `total_queries` counts the whole history.
    """

    total_queries: int = 0
    window_size: int = 0
    avg_latency_ms: float = 0.0
    avg_relevance_score: float = 0.0
    success_rate: float = 0.0
    avg_faithfulness: float = 0.0
    avg_answer_relevancy: float = 0.0
    avg_context_recall: float = 0.0
    avg_context_precision: float = 0.0
    latency_distribution: LatencyDistribution = Field(default_factory=LatencyDistribution)
    intent_distribution: Dict[str, int] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid", frozen=True)


# ---------------------------------------------------------------------
# Metric functions
# ---------------------------------------------------------------------

def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))


def faithfulness(answer: str, context: str) -> float:
    if not context:
        return 0.0

    answer_words = words(answer)
    if not answer_words:
        return 0.0

    context_words = set(words(context))
    grounded = sum(
        1
        for word in answer_words
        if len(word) >= MIN_GROUNDED_WORD_LENGTH and word in context_words
    )
    return _clamp(grounded / len(answer_words))


def answer_relevancy(similarities: Sequence[float], confidence: float) -> float:
    if not similarities:
        return 0.0
    mean_similarity = sum(similarities) / len(similarities)
    return _clamp((mean_similarity + confidence) / 2)


def context_recall(similarities: Sequence[float]) -> float:
    if not similarities:
        return 0.0
    high_quality = sum(1 for s in similarities if s > HIGH_QUALITY_SIMILARITY)
    return _clamp(high_quality / len(similarities))


def context_precision(similarities: Sequence[float]) -> float:
    """
    Rank-weighted precision over the sources above the relevance threshold.

    For each relevant source at 1-based rank r, adds (relevant seen so far) / r;
    the sum is divided by the number of relevant sources.
    """
    cumulative = 0.0
    relevant_found = 0

    for rank, similarity in enumerate(similarities, start=1):
        if similarity > RELEVANT_SIMILARITY:
            relevant_found += 1
            cumulative += relevant_found / rank

    if relevant_found == 0:
        return 0.0
    return _clamp(cumulative / relevant_found)


def _latency_bucket(latency_ms: float) -> str:
    if latency_ms < FAST_LATENCY_MS:
        return "fast"
    if latency_ms < MEDIUM_LATENCY_MS:
        return "medium"
    return "slow"


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


# ---------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------

class EvaluationEngine:
    """
    Thread-safe evaluation history with windowed reporting.

    Records are appended in a single step and never modified; only `reset()`
    removes them.
    """

    def __init__(self, window: int = 100) -> None:
        if window <= 0:
            raise ValueError("Report window must be positive.")
        self.window = window
        self._history: List[EvaluationRecord] = []
        self._lock = RLock()

    def score(
        self,
        query: str,
        intent: str,
        answer: GeneratedAnswer,
        sources: Sequence[RetrievalResult],
        context: str,
        relevance_score: float,
        latency_ms: float,
    ) -> EvaluationRecord:
        """
        Compute metrics for one answered query and append them to the history.
        """
        similarities = [source.similarity for source in sources]

        record = EvaluationRecord(
            query=query,
            intent=intent,
            latency_ms=max(0.0, latency_ms),
            relevance_score=_clamp(relevance_score),
            sources_count=len(sources),
            context_length=len(context),
            faithfulness=faithfulness(answer.text, context),
            answer_relevancy=answer_relevancy(similarities, answer.confidence),
            context_recall=context_recall(similarities),
            context_precision=context_precision(similarities),
            success=len(sources) > 0,
        )

        with self._lock:
            self._history.append(record)

        logger.info(
            "Scored query intent=%s sources=%d latency=%.1fms faithfulness=%.2f",
            intent,
            record.sources_count,
            record.latency_ms,
            record.faithfulness,
        )
        return record

    def history(self) -> List[EvaluationRecord]:
        with self._lock:
            return list(self._history)

    def report(self) -> PerformanceReport:
        """
        Summarise the most recent `window` records.
        """
        with self._lock:
            total = len(self._history)
            recent = self._history[-self.window :]

        if not recent:
            return PerformanceReport()

        buckets = {"fast": 0, "medium": 0, "slow": 0}
        intents: Dict[str, int] = {}
        for record in recent:
            buckets[_latency_bucket(record.latency_ms)] += 1
            intents[record.intent] = intents.get(record.intent, 0) + 1

        return PerformanceReport(
            total_queries=total,
            window_size=len(recent),
            avg_latency_ms=_mean([r.latency_ms for r in recent]),
            avg_relevance_score=_mean([r.relevance_score for r in recent]),
            success_rate=_mean([1.0 if r.success else 0.0 for r in recent]),
            avg_faithfulness=_mean([r.faithfulness for r in recent]),
            avg_answer_relevancy=_mean([r.answer_relevancy for r in recent]),
            avg_context_recall=_mean([r.context_recall for r in recent]),
            avg_context_precision=_mean([r.context_precision for r in recent]),
            latency_distribution=LatencyDistribution(**buckets),
            intent_distribution=intents,
        )

    def reset(self) -> None:
        with self._lock:
            self._history.clear()
        logger.info("Evaluation history cleared")

    def __len__(self) -> int:
        with self._lock:
            return len(self._history)
