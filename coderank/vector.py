"""Dense vector index with brute-force cosine similarity."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
import structlog

from coderank.chunk import RankedResult
from coderank.constants import HYBRID_TOP_K

if TYPE_CHECKING:
    from collections.abc import Sequence

    from coderank.chunk import Chunk

logger = structlog.get_logger()


class DimensionMismatchError(ValueError):
    """Raised when two vectors (or a vector and the index) differ in length."""


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two equal-length vectors.

    Returns 0.0 when either vector has zero norm.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise DimensionMismatchError(f"vector lengths differ: {va.shape[0]} != {vb.shape[0]}")
    norm = np.linalg.norm(va) * np.linalg.norm(vb)
    if norm == 0.0:
        return 0.0
    return float(np.dot(va, vb) / norm)


class VectorIndex:
    """Embeddings of every embedded chunk, stacked into one matrix.

    Chunks without an embedding are not searchable here; they remain
    reachable through the lexical indexes.
    """

    def __init__(self, chunks: Sequence[Chunk]) -> None:
        embedded = [chunk for chunk in chunks if chunk.embedding is not None]
        self._chunks: list[Chunk] = embedded
        if embedded:
            dims = {len(chunk.embedding or ()) for chunk in embedded}
            if len(dims) > 1:
                raise DimensionMismatchError(f"chunks carry embeddings of mixed dimensions: {sorted(dims)}")
            self._matrix = np.asarray([chunk.embedding for chunk in embedded], dtype=np.float32)
            norms = np.linalg.norm(self._matrix, axis=1)
            # zero rows score 0.0 instead of dividing by zero
            self._norms = np.where(norms == 0.0, 1.0, norms)
        else:
            self._matrix = np.empty((0, 0), dtype=np.float32)
            self._norms = np.empty(0, dtype=np.float32)

        logger.info("vector index built", vectors=self.size, dimension=self.dimension, skipped=len(chunks) - self.size)

    @property
    def dimension(self) -> int:
        return int(self._matrix.shape[1]) if self._chunks else 0

    @property
    def size(self) -> int:
        return len(self._chunks)

    def search(self, query_embedding: Sequence[float], top_k: int = HYBRID_TOP_K) -> list[RankedResult]:
        """Embedded chunks ordered by cosine similarity to *query_embedding*."""
        if not self._chunks or top_k <= 0:
            return []

        query = np.asarray(query_embedding, dtype=np.float32)
        if query.shape != (self.dimension,):
            raise DimensionMismatchError(f"query has dimension {query.shape[0]}, index has {self.dimension}")

        query_norm = float(np.linalg.norm(query))
        if query_norm == 0.0:
            scores = np.zeros(self.size, dtype=np.float64)
        else:
            scores = (self._matrix @ query).astype(np.float64) / (self._norms * query_norm)

        order = np.argsort(-scores, kind="stable")[:top_k]
        return [RankedResult(chunk=self._chunks[int(idx)], score=float(scores[idx])) for idx in order]
