"""Embedding capability and batched chunk embedding."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Protocol

import httpx
import structlog

from coderank.constants import (
    DEFAULT_EMBEDDING_MODEL,
    EMBEDDING_BATCH_SIZE,
    EMBEDDING_CONCURRENT_BATCHES,
    MAX_EMBEDDING_CODE_SIZE,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from coderank.chunk import Chunk

logger = structlog.get_logger()


class EmbeddingError(RuntimeError):
    """Raised when embeddings cannot be produced; aborts an index build."""


class Embedder(Protocol):
    """Turns text into fixed-dimension vectors."""

    async def embed(self, text: str) -> list[float]: ...

    async def embed_many(self, texts: list[str]) -> list[list[float]]: ...


class LiteLLMEmbedder:
    """Embedder backed by the LiteLLM Proxy ``/v1/embeddings`` endpoint."""

    def __init__(
        self,
        base_url: str = "http://localhost:4000",
        api_key: str = "",
        model: str = DEFAULT_EMBEDDING_MODEL,
        timeout: float = 120.0,
    ) -> None:
        self.model = model
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.AsyncClient(base_url=base_url.rstrip("/"), headers=headers, timeout=timeout)

    async def embed(self, text: str) -> list[float]:
        vectors = await self.embed_many([text])
        return vectors[0]

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        try:
            resp = await self._client.post("/v1/embeddings", json={"input": texts, "model": self.model})
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise EmbeddingError(f"embedding request failed for model={self.model}: {exc}") from exc
        data = resp.json()

        # the proxy may return items out of order
        items: list[dict[str, object]] = list(data.get("data", []))
        items.sort(key=lambda d: int(d.get("index", 0)))  # type: ignore[call-overload]
        vectors = [[float(x) for x in item["embedding"]] for item in items]  # type: ignore[attr-defined]
        if len(vectors) != len(texts):
            raise EmbeddingError(f"expected {len(texts)} embeddings, got {len(vectors)}")
        return vectors

    async def close(self) -> None:
        await self._client.aclose()


def embedding_text(chunk: Chunk) -> str:
    """Labelled description of a chunk used as embedding input."""
    parts = [
        f"File: {chunk.file_path}",
        f"Type: {chunk.kind}",
        f"Name: {chunk.name}",
        f"Language: {chunk.language}",
    ]
    if chunk.doc_comment:
        parts.append(f"Documentation: {chunk.doc_comment}")
    if chunk.parent_class:
        parts.append(f"Class: {chunk.parent_class}")

    if len(chunk.code) > MAX_EMBEDDING_CODE_SIZE:
        parts.append(f"Code (truncated to {MAX_EMBEDDING_CODE_SIZE} chars):\n{chunk.code[:MAX_EMBEDDING_CODE_SIZE]}...")
    else:
        parts.append(f"Code:\n{chunk.code}")
    return "\n\n".join(parts)


async def embed_chunks(
    chunks: Sequence[Chunk],
    embedder: Embedder,
    batch_size: int = EMBEDDING_BATCH_SIZE,
    max_concurrent_batches: int = EMBEDDING_CONCURRENT_BATCHES,
) -> list[Chunk]:
    """Embed *chunks* in batches and return copies carrying their vectors.

    At most *max_concurrent_batches* requests are in flight; the rest queue
    on a semaphore. Output order matches input order. Any failed batch
    raises :class:`EmbeddingError` and no partial result is returned.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")
    if not chunks:
        return []

    batches = [list(chunks[i : i + batch_size]) for i in range(0, len(chunks), batch_size)]
    semaphore = asyncio.Semaphore(max(1, max_concurrent_batches))
    log = logger.bind(chunks=len(chunks), batches=len(batches))
    log.info("embedding chunks", concurrency=max_concurrent_batches)

    async def run_batch(number: int, batch: list[Chunk]) -> list[Chunk]:
        async with semaphore:
            try:
                vectors = await embedder.embed_many([embedding_text(chunk) for chunk in batch])
            except EmbeddingError:
                log.error("embedding batch failed", batch=number, exc_info=True)
                raise
            except Exception as exc:
                log.error("embedding batch failed", batch=number, exc_info=True)
                raise EmbeddingError(f"embedding batch {number} failed: {exc}") from exc
        if len(vectors) != len(batch):
            raise EmbeddingError(f"embedding batch {number} returned {len(vectors)} vectors for {len(batch)} chunks")
        log.debug("embedding batch done", batch=number, size=len(batch))
        return [chunk.with_embedding(vector) for chunk, vector in zip(batch, vectors, strict=True)]

    tasks = [asyncio.create_task(run_batch(number, batch)) for number, batch in enumerate(batches, start=1)]
    try:
        results = await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    embedded = [chunk for batch in results for chunk in batch]
    log.info("chunks embedded", dimension=len(embedded[0].embedding or ()))
    return embedded
