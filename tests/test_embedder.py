import json
import math

import httpx
import pytest

from docrag_server.core.errors import EmbeddingFailure
from docrag_server.embeddings.embedder import HashingEmbedder, HttpEmbedder, _string_hash


class TestHashingEmbedder:
    """Offline deterministic embeddings."""

    def test_string_hash_matches_polynomial_hash(self):
        assert _string_hash("a") == 97
        assert _string_hash("hello") == 99162322
        # Overflows wrap to signed 32-bit.
        assert -(2**31) <= _string_hash("a considerably longer token") < 2**31

    @pytest.mark.asyncio
    async def test_vectors_are_normalised_and_sized(self):
        embedder = HashingEmbedder(dimension=64)

        [vector] = await embedder.embed(["Quarterly revenue grew ten percent"])

        assert len(vector) == 64
        assert math.sqrt(sum(v * v for v in vector)) == pytest.approx(1.0)

    def test_identical_text_identical_vector(self):
        embedder = HashingEmbedder(dimension=32)
        assert embedder.embed_one("revenue growth") == embedder.embed_one("revenue growth")

    def test_case_and_punctuation_do_not_matter(self):
        embedder = HashingEmbedder(dimension=32)
        assert embedder.embed_one("Revenue?") == embedder.embed_one("revenue")

    def test_stop_words_only_gives_zero_vector(self):
        embedder = HashingEmbedder(dimension=16)
        assert embedder.embed_one("what is the") == [0.0] * 16
        assert embedder.embed_one("") == [0.0] * 16


class TestHttpEmbedder:
    """OpenAI-compatible embedding client."""

    @staticmethod
    def _embedder(handler, **kwargs):
        return HttpEmbedder(
            api_key="test-key",
            model="test-model",
            base_url="https://embeddings.test/v1/embeddings",
            dimension=3,
            transport=httpx.MockTransport(handler),
            **kwargs,
        )

    @pytest.mark.asyncio
    async def test_batches_and_preserves_order(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            payload = json.loads(request.content)
            requests.append(payload)
            data = [{"embedding": [float(len(text)), 0.0, 1.0]} for text in payload["input"]]
            return httpx.Response(200, json={"data": data})

        embedder = self._embedder(handler)

        vectors = await embedder.embed(["a", "bb", "ccc"], batch_size=2)

        assert vectors == [[1.0, 0.0, 1.0], [2.0, 0.0, 1.0], [3.0, 0.0, 1.0]]
        assert len(requests) == 2
        assert requests[0]["model"] == "test-model"
        assert requests[0]["dimensions"] == 3

    @pytest.mark.asyncio
    async def test_sends_bearer_token(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json={"data": [{"embedding": [0.0, 0.0, 1.0]}]})

        await self._embedder(handler).embed(["text"])

        assert seen["auth"] == "Bearer test-key"

    @pytest.mark.asyncio
    async def test_http_error_becomes_embedding_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, json={"error": "down"})

        with pytest.raises(EmbeddingFailure) as excinfo:
            await self._embedder(handler).embed(["text"])

        assert isinstance(excinfo.value.__cause__, httpx.HTTPStatusError)

    @pytest.mark.asyncio
    async def test_malformed_payload_rejected(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"data": [{"embedding": ["x"]}]})

        with pytest.raises(EmbeddingFailure):
            await self._embedder(handler).embed(["text"])

    @pytest.mark.asyncio
    async def test_count_mismatch_rejected(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"data": []})

        with pytest.raises(EmbeddingFailure):
            await self._embedder(handler).embed(["text"])

    @pytest.mark.asyncio
    async def test_empty_input_makes_no_request(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        assert await self._embedder(handler).embed([]) == []
