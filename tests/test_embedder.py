"""Tests for batched chunk embedding and the LiteLLM embedder."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from coderank.embedder import EmbeddingError, LiteLLMEmbedder, embed_chunks, embedding_text
from tests.fakes import DIM, FakeEmbedder, bag_of_words_vector, make_chunk


def _chunks(count: int) -> list:  # type: ignore[type-arg]
    return [make_chunk(f"fn{i}", file_path=f"src/{i}.ts") for i in range(count)]


def _response(status: int, payload: dict[str, object]) -> httpx.Response:
    return httpx.Response(status, json=payload, request=httpx.Request("POST", "http://test/v1/embeddings"))


# ---------------------------------------------------------------------------
# embed_chunks
# ---------------------------------------------------------------------------


async def test_batches_of_fifty() -> None:
    embedder = FakeEmbedder()
    embedded = await embed_chunks(_chunks(120), embedder)

    assert sorted(embedder.batch_sizes) == [20, 50, 50]
    assert len(embedded) == 120
    assert all(chunk.embedding is not None and len(chunk.embedding) == DIM for chunk in embedded)


async def test_order_is_preserved() -> None:
    chunks = _chunks(7)
    embedded = await embed_chunks(chunks, FakeEmbedder(), batch_size=2)
    assert [c.id for c in embedded] == [c.id for c in chunks]
    # vectors belong to their own chunk
    for original, result in zip(chunks, embedded, strict=True):
        assert list(result.embedding or ()) == bag_of_words_vector(embedding_text(original))


async def test_concurrent_batches_are_bounded() -> None:
    embedder = FakeEmbedder(delay=0.01)
    await embed_chunks(_chunks(40), embedder, batch_size=2, max_concurrent_batches=4)

    assert len(embedder.batch_sizes) == 20
    assert embedder.max_in_flight == 4


async def test_failed_batch_aborts() -> None:
    embedder = FakeEmbedder(fail_on_call=2, delay=0.01)
    with pytest.raises(EmbeddingError, match="provider unavailable"):
        await embed_chunks(_chunks(10), embedder, batch_size=2, max_concurrent_batches=1)
    # remaining batches are cancelled
    assert len(embedder.batch_sizes) < 5
    assert embedder.in_flight == 0


async def test_wrong_vector_count_aborts() -> None:
    embedder = AsyncMock()
    embedder.embed_many.return_value = [[1.0, 0.0]]
    with pytest.raises(EmbeddingError, match="returned 1 vectors for 3 chunks"):
        await embed_chunks(_chunks(3), embedder)


async def test_empty_and_invalid_batch_size() -> None:
    embedder = FakeEmbedder()
    assert await embed_chunks([], embedder) == []
    assert embedder.batch_sizes == []
    with pytest.raises(ValueError, match="batch_size"):
        await embed_chunks(_chunks(1), embedder, batch_size=0)


# ---------------------------------------------------------------------------
# embedding_text
# ---------------------------------------------------------------------------


def test_embedding_text_labels() -> None:
    chunk = make_chunk(
        "hash",
        "hash(pw) { return pw; }",
        file_path="src/auth.ts",
        kind="method",
        doc_comment="// Hashes a password.",
        parent_class="AuthService",
    )
    assert embedding_text(chunk) == (
        "File: src/auth.ts\n\n"
        "Type: method\n\n"
        "Name: hash\n\n"
        "Language: typescript\n\n"
        "Documentation: // Hashes a password.\n\n"
        "Class: AuthService\n\n"
        "Code:\nhash(pw) { return pw; }"
    )


def test_embedding_text_omits_missing_fields() -> None:
    text = embedding_text(make_chunk("plain", "const x = 1;"))
    assert "Documentation:" not in text
    assert "Class:" not in text
    assert text.endswith("Code:\nconst x = 1;")


def test_embedding_text_truncates_long_code() -> None:
    text = embedding_text(make_chunk("big", "x" * 12_000))
    assert "Code (truncated to 10000 chars):\n" in text
    assert text.endswith("x" * 10_000 + "...")
    assert "x" * 10_001 not in text


# ---------------------------------------------------------------------------
# LiteLLMEmbedder
# ---------------------------------------------------------------------------


async def test_litellm_embedder_sorts_by_index() -> None:
    embedder = LiteLLMEmbedder(base_url="http://test", api_key="sk-test", model="text-embedding-3-small")
    payload = {
        "data": [
            {"index": 1, "embedding": [0.0, 1.0]},
            {"index": 0, "embedding": [1.0, 0.0]},
        ]
    }
    with patch.object(embedder._client, "post", new_callable=AsyncMock, return_value=_response(200, payload)) as post:
        vectors = await embedder.embed_many(["first", "second"])

    assert vectors == [[1.0, 0.0], [0.0, 1.0]]
    post.assert_awaited_once_with(
        "/v1/embeddings", json={"input": ["first", "second"], "model": "text-embedding-3-small"}
    )
    assert embedder._client.headers["Authorization"] == "Bearer sk-test"
    await embedder.close()


async def test_litellm_embedder_single_text() -> None:
    embedder = LiteLLMEmbedder(base_url="http://test")
    payload = {"data": [{"index": 0, "embedding": [0.5, 0.5]}]}
    with patch.object(embedder._client, "post", new_callable=AsyncMock, return_value=_response(200, payload)):
        assert await embedder.embed("query") == [0.5, 0.5]
    assert "Authorization" not in embedder._client.headers
    await embedder.close()


async def test_litellm_embedder_http_error() -> None:
    embedder = LiteLLMEmbedder(base_url="http://test")
    with (
        patch.object(embedder._client, "post", new_callable=AsyncMock, return_value=_response(500, {"error": "x"})),
        pytest.raises(EmbeddingError, match="embedding request failed"),
    ):
        await embedder.embed_many(["a"])
    await embedder.close()


async def test_litellm_embedder_connection_error() -> None:
    embedder = LiteLLMEmbedder(base_url="http://test")
    with (
        patch.object(embedder._client, "post", new_callable=AsyncMock, side_effect=httpx.ConnectError("refused")),
        pytest.raises(EmbeddingError),
    ):
        await embedder.embed_many(["a"])
    await embedder.close()


async def test_litellm_embedder_count_mismatch() -> None:
    embedder = LiteLLMEmbedder(base_url="http://test")
    payload = {"data": [{"index": 0, "embedding": [1.0]}]}
    with (
        patch.object(embedder._client, "post", new_callable=AsyncMock, return_value=_response(200, payload)),
        pytest.raises(EmbeddingError, match="expected 2 embeddings, got 1"),
    ):
        await embedder.embed_many(["a", "b"])
    await embedder.close()


async def test_litellm_embedder_empty_input_skips_request() -> None:
    embedder = LiteLLMEmbedder(base_url="http://test")
    with patch.object(embedder._client, "post", new_callable=AsyncMock) as post:
        assert await embedder.embed_many([]) == []
    post.assert_not_awaited()
    await embedder.close()
