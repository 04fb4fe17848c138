"""Three-stage reranking funnel: hybrid -> embedding similarity -> relevance."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from coderank.chunk import RankedResult
from coderank.constants import (
    EMBEDDING_RERANK_TOP_K,
    RELEVANCE_RERANK_TOP_K,
    RELEVANCE_SCORE_MAX,
    SCORING_CONCURRENCY,
)
from coderank.vector import cosine_similarity

if TYPE_CHECKING:
    from collections.abc import Sequence

    from coderank.scoring import RelevanceScorer

logger = structlog.get_logger()


@dataclass(frozen=True)
class PipelineStages:
    stage1: list[RankedResult]
    stage2: list[RankedResult]
    stage3: list[RankedResult]


def rerank_by_embedding(
    query_embedding: Sequence[float],
    candidates: Sequence[RankedResult],
    top_k: int = EMBEDDING_RERANK_TOP_K,
) -> list[RankedResult]:
    """Re-score candidates by cosine similarity to the query.

    Candidates without an embedding cannot be compared and are dropped.
    """
    scored = [
        RankedResult(chunk=result.chunk, score=cosine_similarity(query_embedding, result.chunk.embedding))
        for result in candidates
        if result.chunk.embedding is not None
    ]
    scored.sort(key=lambda r: r.score, reverse=True)
    return scored[:top_k]


async def rerank_by_relevance(
    query: str,
    candidates: Sequence[RankedResult],
    scorer: RelevanceScorer,
    top_k: int = RELEVANCE_RERANK_TOP_K,
    max_concurrency: int = SCORING_CONCURRENCY,
) -> list[RankedResult]:
    """Score every candidate with *scorer* and keep the best *top_k*.

    All calls complete before sorting. A failed call scores 0 so one bad
    candidate never sinks the query.
    """
    semaphore = asyncio.Semaphore(max(1, max_concurrency))

    async def score_one(result: RankedResult) -> RankedResult:
        async with semaphore:
            try:
                relevance = await scorer.score(query, result.chunk)
            except Exception as exc:
                logger.warning("relevance scoring failed", chunk_id=result.chunk.id, exc_info=True)
                return RankedResult(chunk=result.chunk, score=0.0, explanation=f"Ranking failed: {exc}")
        total = max(0.0, min(float(relevance.total), RELEVANCE_SCORE_MAX))
        return RankedResult(chunk=result.chunk, score=total, explanation=relevance.explanation)

    scored = list(await asyncio.gather(*(score_one(result) for result in candidates)))
    scored.sort(key=lambda r: r.score, reverse=True)
    return scored[:top_k]


class RerankPipeline:
    """Narrows hybrid candidates in two stages; never reintroduces a dropped chunk."""

    def __init__(
        self,
        scorer: RelevanceScorer,
        stage2_top_k: int = EMBEDDING_RERANK_TOP_K,
        stage3_top_k: int = RELEVANCE_RERANK_TOP_K,
        scoring_concurrency: int = SCORING_CONCURRENCY,
    ) -> None:
        self._scorer = scorer
        self._stage2_top_k = stage2_top_k
        self._stage3_top_k = stage3_top_k
        self._scoring_concurrency = scoring_concurrency

    async def run(
        self,
        query: str,
        query_embedding: Sequence[float],
        hybrid: Sequence[RankedResult],
    ) -> PipelineStages:
        stage1 = list(hybrid)
        stage2 = rerank_by_embedding(query_embedding, stage1, self._stage2_top_k)
        stage3 = await rerank_by_relevance(
            query,
            stage2,
            self._scorer,
            top_k=self._stage3_top_k,
            max_concurrency=self._scoring_concurrency,
        )
        logger.info("rerank complete", stage1=len(stage1), stage2=len(stage2), stage3=len(stage3))
        return PipelineStages(stage1=stage1, stage2=stage2, stage3=stage3)


def analyze_stages(stages: PipelineStages) -> dict[str, object]:
    """Stage sizes, how many survivors came from the previous stage, and the winner."""
    stage1_ids = {r.chunk.id for r in stages.stage1}
    stage2_ids = {r.chunk.id for r in stages.stage2}
    return {
        "stage1_count": len(stages.stage1),
        "stage2_count": len(stages.stage2),
        "stage3_count": len(stages.stage3),
        "stage2_overlap": sum(1 for r in stages.stage2 if r.chunk.id in stage1_ids),
        "stage3_overlap": sum(1 for r in stages.stage3 if r.chunk.id in stage2_ids),
        "top_chunk_id": stages.stage3[0].chunk.id if stages.stage3 else None,
    }
