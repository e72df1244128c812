"""
Embedding Providers

This module defines the embedding capability consumed by ingestion and
retrieval, and two implementations of it:

- `HashingEmbedder`: deterministic, offline bag-of-words hashing. Needs no
  network and gives identical vectors for identical text.
- `HttpEmbedder`: a client for OpenAI-compatible `/embeddings` endpoints,
  responsible for batching, transport error isolation and strict response
  validation.

Any object with a `dimension` attribute and an async `embed(texts)` method can
be used in their place.
"""

from __future__ import annotations

from typing import List, Optional, Protocol, Sequence, runtime_checkable
import logging
import math

import httpx

from ..config import Settings, settings
from ..core.errors import EmbeddingFailure
from ..text import words

logger = logging.getLogger("docrag.embedder")


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Maps text to fixed-length float vectors."""

    dimension: int

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        ...


# ---------------------------------------------------------------------
# Offline hashing embedder
# ---------------------------------------------------------------------

# Function words carry no topical signal and would dominate short queries.
_HASHING_STOP_WORDS = frozenset({
    "a", "an", "and", "are", "as", "at", "be", "but", "by", "did", "do",
    "does", "for", "from", "has", "have", "how", "in", "is", "it", "me",
    "of", "on", "or", "so", "that", "the", "this", "to", "was", "were",
    "what", "when", "where", "which", "who", "why", "with",
})


def _string_hash(token: str) -> int:
    """Signed 32-bit polynomial string hash (h = h * 31 + c)."""
    h = 0
    for ch in token:
        h = ((h << 5) - h + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return h


class HashingEmbedder:
    """
    Deterministic bag-of-words embedder.

    Each non-stop-word token increments the bucket selected by its hash; the
    resulting vector is L2-normalised. Text without content words embeds to
    the zero vector.
    """

    def __init__(self, dimension: Optional[int] = None) -> None:
        self.dimension = dimension or settings.embedding_dim

    def embed_one(self, text: str) -> List[float]:
        vector = [0.0] * self.dimension

        for token in words(text):
            if token in _HASHING_STOP_WORDS:
                continue
            vector[abs(_string_hash(token)) % self.dimension] += 1.0

        magnitude = math.sqrt(sum(v * v for v in vector))
        if magnitude == 0.0:
            return vector
        return [v / magnitude for v in vector]

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        return [self.embed_one(text) for text in texts]


# ---------------------------------------------------------------------
# HTTP embedder
# ---------------------------------------------------------------------

class HttpEmbedder:
    """
    Asynchronous embedding client for OpenAI-compatible APIs.

    This class performs no caching and is safe to reuse across requests.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        dimension: Optional[int] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize an HttpEmbedder.

        Parameters
        ----------
        api_key : Optional[str]
            Override for the API key. Defaults to settings.openai_api_key.

        model : Optional[str]
            Override for the embedding model. Defaults to settings.embedding_model.

        base_url : Optional[str]
            Embeddings endpoint URL. Defaults to settings.embedding_base_url.

        dimension : Optional[int]
            Requested vector length. Defaults to settings.embedding_dim.

        timeout : Optional[float]
            HTTP timeout for each request.

        transport : Optional[httpx.AsyncBaseTransport]
            Custom transport, used by tests to stub the remote API.
        """
        if api_key is None and settings.openai_api_key is not None:
            api_key = settings.openai_api_key.get_secret_value()
        self.api_key = api_key or ""
        self.model = model or settings.embedding_model
        self.base_url = base_url or settings.embedding_base_url
        self.dimension = dimension or settings.embedding_dim
        self.timeout = timeout or settings.http_timeout
        self._transport = transport

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed(
        self,
        texts: Sequence[str],
        batch_size: int = 20,
    ) -> List[List[float]]:
        """
        Generate embeddings for a sequence of input texts.

        Raises
        ------
        EmbeddingFailure
            If any batch fails or the response is malformed.
        """
        if not texts:
            return []

        all_embeddings: List[List[float]] = []
        headers = {"Authorization": f"Bearer {self.api_key}"}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            for start in range(0, len(texts), batch_size):
                batch = list(texts[start : start + batch_size])
                payload = {
                    "model": self.model,
                    "input": batch,
                    "dimensions": self.dimension,
                }

                try:
                    response = await client.post(
                        self.base_url,
                        json=payload,
                        headers=headers,
                    )
                    response.raise_for_status()
                except httpx.HTTPError as exc:
                    logger.error(
                        "Embedding request failed (%s): batch size=%d, error=%s",
                        type(exc).__name__,
                        len(batch),
                        str(exc),
                    )
                    raise EmbeddingFailure(
                        f"Embedding generation failed: {type(exc).__name__}",
                        {"batch_size": len(batch), "model": self.model},
                    ) from exc

                embeddings = self._extract_embeddings(response.json())
                if len(embeddings) != len(batch):
                    raise EmbeddingFailure(
                        "Embedding count does not match input count.",
                        {"expected": len(batch), "actual": len(embeddings)},
                    )
                all_embeddings.extend(embeddings)

        return all_embeddings

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_embeddings(data: dict) -> List[List[float]]:
        """
        Parse and validate embedding output format.

        OpenAI returns:
            { "data": [ {"embedding": [...]}, ... ] }
        """
        if not isinstance(data, dict) or "data" not in data:
            raise EmbeddingFailure("Embedding response missing 'data' field.")

        records = data["data"]
        if not isinstance(records, list):
            raise EmbeddingFailure("'data' field must be a list.")

        embeddings: List[List[float]] = []

        for index, record in enumerate(records):
            if not isinstance(record, dict) or "embedding" not in record:
                raise EmbeddingFailure(
                    f"Malformed embedding record at index {index}."
                )

            emb = record["embedding"]
            if not isinstance(emb, list) or not all(
                isinstance(x, (float, int)) for x in emb
            ):
                raise EmbeddingFailure(
                    f"Invalid embedding vector at index {index}: must be float list."
                )

            embeddings.append([float(x) for x in emb])

        return embeddings


def build_embedder(cfg: Settings) -> EmbeddingProvider:
    """
    Create the embedding provider selected by configuration.
    """
    if cfg.embedding_provider == "http":
        api_key = cfg.openai_api_key.get_secret_value() if cfg.openai_api_key else None
        return HttpEmbedder(
            api_key=api_key,
            model=cfg.embedding_model,
            base_url=cfg.embedding_base_url,
            dimension=cfg.embedding_dim,
            timeout=cfg.http_timeout,
        )
    return HashingEmbedder(dimension=cfg.embedding_dim)
