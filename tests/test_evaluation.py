import pytest

from docrag_server.evaluation.engine import (
    EvaluationEngine,
    answer_relevancy,
    context_precision,
    context_recall,
    faithfulness,
)
from docrag_server.rag.synthesizer import GeneratedAnswer

from conftest import make_result


def _answer(text: str = "Revenue grew strongly", confidence: float = 0.8) -> GeneratedAnswer:
    return GeneratedAnswer(text=text, confidence=confidence, intent="general", context_used=True)


def _score(engine, latency_ms=100.0, intent="general", sources=None):
    sources = [make_result(0.8)] if sources is None else sources
    return engine.score(
        query="What happened to revenue?",
        intent=intent,
        answer=_answer(),
        sources=sources,
        context="Source: paragraph\nRevenue grew 10%.\n\n",
        relevance_score=0.7,
        latency_ms=latency_ms,
    )


class TestMetricFunctions:
    """Individual metric definitions."""

    def test_context_precision_rank_weighting(self):
        # Relevant at ranks 1 and 3: (1/1 + 2/3) / 2
        assert context_precision([0.9, 0.4, 0.6]) == pytest.approx(5 / 6)

    def test_context_precision_without_relevant_sources(self):
        assert context_precision([0.5, 0.2]) == 0.0
        assert context_precision([]) == 0.0

    def test_context_recall(self):
        assert context_recall([0.9, 0.4, 0.75, 0.6]) == pytest.approx(0.5)
        assert context_recall([]) == 0.0

    def test_answer_relevancy(self):
        assert answer_relevancy([0.6, 0.8], 0.9) == pytest.approx(0.8)
        assert answer_relevancy([], 0.9) == 0.0

    def test_faithfulness_counts_grounded_long_words(self):
        # "revenue" and "grew" are grounded; "strongly" is not.
        assert faithfulness("Revenue grew strongly", "Revenue grew 10%") == pytest.approx(2 / 3)

    def test_faithfulness_ignores_short_words(self):
        assert faithfulness("it is up", "it is up") == 0.0

    def test_faithfulness_without_context_or_answer(self):
        assert faithfulness("Revenue grew", "") == 0.0
        assert faithfulness("", "Revenue grew") == 0.0

    def test_metrics_stay_in_unit_range(self):
        assert 0.0 <= answer_relevancy([1.0, 1.0], 1.0) <= 1.0
        assert 0.0 <= context_precision([0.99] * 5) <= 1.0


LONG_ANSWER = " ".join(["Revenue grew because demand outpaced supply"] * 40)


@pytest.mark.parametrize(
    "answer_text, context, similarities, confidence, relevance",
    [
        ("Revenue grew strongly", "Revenue grew 10%", [-1.0, -0.5], 0.0, -0.6),
        ("Revenue grew strongly", "Revenue grew 10%", [-0.2, 0.9, -0.9], 0.5, 0.1),
        ("", "Revenue grew 10%", [0.8], 0.5, 0.5),
        ("", "", [], 0.0, 0.0),
        (LONG_ANSWER, "Revenue grew", [0.9, 0.95], 1.0, 0.97),
        (LONG_ANSWER, "", [1.0] * 5, 1.0, 1.4),
        ("Revenue revenue revenue", "revenue", [1.0, 1.0, 1.0], 1.0, 1.0),
    ],
)
def test_scored_metrics_stay_in_unit_range(answer_text, context, similarities, confidence, relevance):
    record = EvaluationEngine().score(
        query="What happened to revenue?",
        intent="general",
        answer=_answer(answer_text, confidence),
        sources=[make_result(s, chunk_id=i) for i, s in enumerate(similarities, start=1)],
        context=context,
        relevance_score=relevance,
        latency_ms=10.0,
    )

    for value in (
        record.relevance_score,
        record.faithfulness,
        record.answer_relevancy,
        record.context_recall,
        record.context_precision,
    ):
        assert 0.0 <= value <= 1.0


class TestEvaluationEngine:
    """History and windowed reporting."""

    def test_score_builds_record(self):
        engine = EvaluationEngine()

        record = _score(engine, sources=[make_result(0.9), make_result(0.4, chunk_id=2)])

        assert record.sources_count == 2
        assert record.success is True
        assert record.context_recall == pytest.approx(0.5)
        assert record.context_precision == pytest.approx(1.0)
        assert record.faithfulness == pytest.approx(2 / 3)
        for value in (
            record.faithfulness,
            record.answer_relevancy,
            record.context_recall,
            record.context_precision,
        ):
            assert 0.0 <= value <= 1.0

    def test_no_sources_is_unsuccessful(self):
        record = _score(EvaluationEngine(), sources=[])

        assert record.success is False
        assert record.answer_relevancy == 0.0

    def test_empty_report_is_all_zero(self):
        report = EvaluationEngine().report()

        assert report.total_queries == 0
        assert report.window_size == 0
        assert report.avg_latency_ms == 0.0
        assert report.intent_distribution == {}

    def test_report_uses_most_recent_window(self):
        engine = EvaluationEngine(window=100)
        for i in range(120):
            _score(engine, latency_ms=i * 50.0)

        report = engine.report()
        buckets = report.latency_distribution

        assert report.total_queries == 120
        assert report.window_size == 100
        assert buckets.fast + buckets.medium + buckets.slow == 100
        # The window holds latencies 1000ms..5950ms.
        assert (buckets.fast, buckets.medium, buckets.slow) == (0, 40, 60)
        assert len(engine.history()) == 120

    def test_intent_distribution_and_reset(self):
        engine = EvaluationEngine()
        _score(engine, intent="factual")
        _score(engine, intent="factual")
        _score(engine, intent="visual")

        assert engine.report().intent_distribution == {"factual": 2, "visual": 1}
        assert engine.report().success_rate == pytest.approx(1.0)

        engine.reset()

        assert len(engine) == 0
        assert engine.report().total_queries == 0
