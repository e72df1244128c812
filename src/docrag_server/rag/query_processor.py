"""
Query Understanding

Classifies a raw query's intent, extracts entities and keywords, and builds
the synonym-expanded text used for retrieval.

The intent, entity, stop-word and synonym tables below are plain data;
adding an intent or entity type does not require touching `QueryProcessor`.
"""

from __future__ import annotations

import logging
import re
import string
from typing import Dict, List, Literal, Pattern, Tuple

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger("docrag.query")

Intent = Literal[
    "factual",
    "comparison",
    "procedural",
    "analytical",
    "numerical",
    "visual",
    "general",
]

DEFAULT_INTENT: Intent = "general"

# Evaluated in order; the first matching pattern decides the intent.
INTENT_PATTERNS: List[Tuple[Intent, Pattern[str]]] = [
    ("factual", re.compile(r"what is|define|explain|tell me about", re.IGNORECASE)),
    ("comparison", re.compile(r"compare|versus|vs|difference between", re.IGNORECASE)),
    ("procedural", re.compile(r"how to|steps|process|procedure", re.IGNORECASE)),
    ("analytical", re.compile(r"analyze|analysis|insights|trends", re.IGNORECASE)),
    ("numerical", re.compile(r"statistics|numbers|data|metrics", re.IGNORECASE)),
    ("visual", re.compile(r"chart|graph|table|image|figure", re.IGNORECASE)),
]

ENTITY_PATTERNS: List[Tuple[str, Pattern[str]]] = [
    (
        "date",
        re.compile(
            r"\d{4}|\d{1,2}/\d{1,2}/\d{4}|january|february|march|april|may|june"
            r"|july|august|september|october|november|december",
            re.IGNORECASE,
        ),
    ),
    ("number", re.compile(r"\d+\.?\d*")),
    (
        "organization",
        re.compile(r"\b[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*\s+(?:Inc|LLC|Corp|Company|Ltd)\b"),
    ),
]

# Keywords are whitespace tokens with surrounding punctuation stripped, so
# "data?" and "data" look up the same stop-word and synonym entries.
STOP_WORDS = frozenset({"the", "is", "at", "which", "on", "a", "an", "and", "or", "but"})

SYNONYMS: Dict[str, List[str]] = {
    "data": ["information", "statistics", "metrics"],
    "analyze": ["examine", "study", "review"],
    "show": ["display", "present", "demonstrate"],
}

MAX_KEYWORDS = 10


class Entity(BaseModel):
    type: str
    value: str

    model_config = ConfigDict(extra="forbid", frozen=True)


class QueryContext(BaseModel):
    """
    Result of query processing. `expanded_query` feeds retrieval only; the
    raw `query` is what reranking, synthesis and evaluation see.
    """

    query: str
    intent: Intent = DEFAULT_INTENT
    keywords: List[str] = Field(default_factory=list)
    entities: List[Entity] = Field(default_factory=list)
    expanded_query: str

    model_config = ConfigDict(extra="forbid", frozen=True)


def classify_intent(query: str) -> Intent:
    for intent, pattern in INTENT_PATTERNS:
        if pattern.search(query):
            return intent
    return DEFAULT_INTENT


def extract_entities(query: str) -> List[Entity]:
    """Every match of every entity pattern, grouped by pattern order."""
    entities: List[Entity] = []
    for entity_type, pattern in ENTITY_PATTERNS:
        for match in pattern.finditer(query):
            entities.append(Entity(type=entity_type, value=match.group(0)))
    return entities


def extract_keywords(query: str) -> List[str]:
    keywords: List[str] = []
    for token in query.lower().split():
        word = token.strip(string.punctuation)
        if len(word) <= 2 or word in STOP_WORDS:
            continue
        keywords.append(word)
    return keywords[:MAX_KEYWORDS]


def expand_query(query: str, keywords: List[str]) -> str:
    expanded = query
    for keyword in keywords:
        synonyms = SYNONYMS.get(keyword)
        if synonyms:
            expanded += " " + " ".join(synonyms)
    return expanded


class QueryProcessor:
    """Stateless; one instance can serve concurrent queries."""

    def process(self, query: str) -> QueryContext:
        keywords = extract_keywords(query)
        context = QueryContext(
            query=query,
            intent=classify_intent(query),
            keywords=keywords,
            entities=extract_entities(query),
            expanded_query=expand_query(query, keywords),
        )
        logger.debug(
            "Processed query intent=%s keywords=%s entities=%d",
            context.intent,
            context.keywords,
            len(context.entities),
        )
        return context
