"""Hybrid retrieval: vector search plus two BM25 indexes, merged with RRF."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from coderank.chunk import RankedResult
from coderank.constants import HYBRID_TOP_K, RRF_K

if TYPE_CHECKING:
    from collections.abc import Sequence

    from coderank.lexical import LexicalIndex
    from coderank.vector import VectorIndex

logger = structlog.get_logger()

__all__ = ["RRF_K", "HybridBreakdown", "HybridSearcher", "reciprocal_rank_fusion"]


def reciprocal_rank_fusion(
    result_lists: Sequence[Sequence[RankedResult]],
    top_k: int = HYBRID_TOP_K,
    k: int = RRF_K,
) -> list[RankedResult]:
    """Merge ranked lists by summing ``1 / (k + rank)`` per chunk id.

    Ranks are 1-indexed within each list. Only rank positions matter, so
    lists scored on incomparable scales (cosine, BM25) fuse cleanly. Equal
    fused scores keep the order in which chunks were first seen.
    """
    fused: dict[str, float] = {}
    first_seen: dict[str, RankedResult] = {}

    for results in result_lists:
        for rank, result in enumerate(results, start=1):
            chunk_id = result.chunk.id
            fused[chunk_id] = fused.get(chunk_id, 0.0) + 1.0 / (k + rank)
            first_seen.setdefault(chunk_id, result)

    ordered = sorted(fused.items(), key=lambda item: item[1], reverse=True)
    return [RankedResult(chunk=first_seen[chunk_id].chunk, score=score) for chunk_id, score in ordered[:top_k]]


@dataclass(frozen=True)
class HybridBreakdown:
    vector: list[RankedResult]
    lexical_code: list[RankedResult]
    lexical_metadata: list[RankedResult]
    hybrid: list[RankedResult]


class HybridSearcher:
    """Runs the three retrievers over one built index and fuses their output."""

    def __init__(
        self,
        code_index: LexicalIndex,
        metadata_index: LexicalIndex,
        vector_index: VectorIndex,
    ) -> None:
        self._code_index = code_index
        self._metadata_index = metadata_index
        self._vector_index = vector_index

    def search(self, query: str, query_embedding: Sequence[float], top_k: int = HYBRID_TOP_K) -> list[RankedResult]:
        return self.search_with_breakdown(query, query_embedding, top_k).hybrid

    def search_with_breakdown(
        self,
        query: str,
        query_embedding: Sequence[float],
        top_k: int = HYBRID_TOP_K,
    ) -> HybridBreakdown:
        vector = self._vector_index.search(query_embedding, top_k)
        lexical_code = self._code_index.search(query, top_k)
        lexical_metadata = self._metadata_index.search(query, top_k)
        hybrid = reciprocal_rank_fusion([vector, lexical_code, lexical_metadata], top_k)

        logger.debug(
            "hybrid search",
            vector=len(vector),
            lexical_code=len(lexical_code),
            lexical_metadata=len(lexical_metadata),
            hybrid=len(hybrid),
        )
        return HybridBreakdown(
            vector=vector,
            lexical_code=lexical_code,
            lexical_metadata=lexical_metadata,
            hybrid=hybrid,
        )
