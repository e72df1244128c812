"""
Answer Synthesis

An answer synthesizer turns (query, context, intent) into a `GeneratedAnswer`.
Two implementations are provided:

- `TemplateSynthesizer`: an intent-specific lead-in followed by an extractive
  summary of the context. Deterministic and offline.
- `LLMSynthesizer`: delegates generation to a chat-completions model through
  `LLMClient`.

Both report the same heuristic confidence so scores stay comparable across
deployments.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, Optional, Protocol

import httpx
from pydantic import BaseModel, ConfigDict, Field

from .query_processor import Intent
from ..core.errors import SynthesisFailure
from ..llm.client import LLMClient
from ..text import words

logger = logging.getLogger("docrag.synthesizer")

NO_INFORMATION_ANSWER = (
    "I couldn't find specific information in the uploaded documents to answer "
    "your question. Please make sure the relevant documents are uploaded and "
    "try rephrasing your question."
)

INTENT_TEMPLATES: Dict[str, str] = {
    "factual": 'Based on the provided context, here\'s what I found about "{query}":\n\n',
    "comparison": "Comparing the information from the documents:\n\n",
    "procedural": "Here are the steps based on the documentation:\n\n",
    "analytical": "Based on my analysis of the provided data:\n\n",
    "numerical": "Here are the key statistics and numbers:\n\n",
    "visual": "Based on the charts, tables, and visual elements:\n\n",
    "general": "Based on the available information:\n\n",
}

_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
MIN_SUMMARY_SENTENCE_CHARS = 20
SUMMARY_SENTENCES = 3


class GeneratedAnswer(BaseModel):
    text: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    intent: Intent
    context_used: bool

    model_config = ConfigDict(extra="forbid", frozen=True)


class AnswerSynthesizer(Protocol):
    async def generate(self, query: str, context: str, intent: Intent) -> GeneratedAnswer:
        ...


# ---------------------------------------------------------------------
# Shared heuristics
# ---------------------------------------------------------------------

def estimate_confidence(context: str, query: str) -> float:
    """
    Heuristic answer confidence in [0.5, 1.0].

    Starts at 0.5, adds 0.2 for a context longer than 500 characters and up to
    0.3 for the share of query words that appear in the context.
    """
    confidence = 0.5
    if len(context) > 500:
        confidence += 0.2

    query_words = words(query)
    if query_words:
        context_words = set(words(context))
        matched = sum(1 for word in query_words if word in context_words)
        confidence += (matched / len(query_words)) * 0.3

    return min(confidence, 1.0)


def summarize_context(context: str) -> str:
    """
    Extractive summary: the first three sentences longer than 20 characters.
    """
    if not context:
        return NO_INFORMATION_ANSWER

    sentences = [
        s.strip()
        for s in _SENTENCE_SPLIT_RE.split(context)
        if len(s.strip()) > MIN_SUMMARY_SENTENCE_CHARS
    ]
    summary = ". ".join(sentences[:SUMMARY_SENTENCES])
    return summary + ("..." if len(sentences) > SUMMARY_SENTENCES else ".")


def _lead_in(query: str, intent: str) -> str:
    template = INTENT_TEMPLATES.get(intent, INTENT_TEMPLATES["general"])
    return template.format(query=query)


# ---------------------------------------------------------------------
# Implementations
# ---------------------------------------------------------------------

class TemplateSynthesizer:
    """Deterministic synthesizer; never fails."""

    async def generate(self, query: str, context: str, intent: Intent) -> GeneratedAnswer:
        return GeneratedAnswer(
            text=_lead_in(query, intent) + summarize_context(context),
            confidence=estimate_confidence(context, query),
            intent=intent,
            context_used=bool(context),
        )


class LLMSynthesizer:
    """
    Chat-model synthesizer.

    An empty context short-circuits to the no-information answer without a
    model call.
    """

    SYSTEM_PROMPT = (
        "You answer questions strictly from the document excerpts provided. "
        "Each excerpt starts with a 'Source:' line naming its content type. "
        "If the excerpts do not contain the answer, say so.\n\n"
        "Question type: {intent}\n\n"
        "Excerpts:\n{context}"
    )

    def __init__(self, client: Optional[LLMClient] = None, temperature: float = 0.2) -> None:
        self._client = client or LLMClient()
        self.temperature = temperature

    async def generate(self, query: str, context: str, intent: Intent) -> GeneratedAnswer:
        confidence = estimate_confidence(context, query)

        if not context:
            return GeneratedAnswer(
                text=NO_INFORMATION_ANSWER,
                confidence=confidence,
                intent=intent,
                context_used=False,
            )

        try:
            message = await self._client.chat(
                system_prompt=self.SYSTEM_PROMPT.format(intent=intent, context=context),
                messages=[{"role": "user", "content": query}],
                temperature=self.temperature,
            )
            text = message["content"]
        except httpx.HTTPError as exc:
            logger.error("Answer generation request failed: %s", exc)
            raise SynthesisFailure(
                f"Answer generation failed: {type(exc).__name__}",
                {"intent": intent, "context_length": len(context)},
            ) from exc
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise SynthesisFailure(
                "Malformed chat completion response.",
                {"intent": intent},
            ) from exc

        if not isinstance(text, str) or not text.strip():
            raise SynthesisFailure("Chat completion returned no content.", {"intent": intent})

        return GeneratedAnswer(
            text=text.strip(),
            confidence=confidence,
            intent=intent,
            context_used=True,
        )
