"""Tests for reciprocal rank fusion and the hybrid searcher."""

from __future__ import annotations

import pytest

from coderank.chunk import RankedResult
from coderank.fusion import HybridSearcher, reciprocal_rank_fusion
from coderank.lexical import create_code_index, create_metadata_index
from coderank.vector import VectorIndex
from tests.fakes import make_chunk

A = make_chunk("a", file_path="a.ts")
B = make_chunk("b", file_path="b.ts")
C = make_chunk("c", file_path="c.ts")


def _ranked(*chunks: object, scores: tuple[float, ...] | None = None) -> list[RankedResult]:
    scores = scores or tuple(float(len(chunks) - i) for i in range(len(chunks)))
    return [RankedResult(chunk=c, score=s) for c, s in zip(chunks, scores, strict=True)]  # type: ignore[arg-type]


def test_single_list_uses_one_indexed_ranks() -> None:
    fused = reciprocal_rank_fusion([_ranked(A, B)])
    assert [r.chunk.id for r in fused] == ["a.ts:1", "b.ts:1"]
    assert fused[0].score == pytest.approx(1 / 61)
    assert fused[1].score == pytest.approx(1 / 62)


def test_chunk_first_in_every_list() -> None:
    fused = reciprocal_rank_fusion([_ranked(A, B), _ranked(A, C), _ranked(A)])
    assert fused[0].chunk.id == "a.ts:1"
    assert fused[0].score == pytest.approx(3 / 61)


def test_agreement_beats_single_top_rank() -> None:
    # B is second everywhere; A and C are each first once
    fused = reciprocal_rank_fusion([_ranked(A, B), _ranked(C, B), _ranked(B)])
    assert fused[0].chunk.id == "b.ts:1"
    assert fused[0].score == pytest.approx(2 / 62 + 1 / 61)


def test_raw_scores_are_ignored() -> None:
    fused = reciprocal_rank_fusion([_ranked(A, B, scores=(1000.0, 0.001)), _ranked(B, A, scores=(0.9, 0.1))])
    assert fused[0].score == pytest.approx(fused[1].score)


def test_ties_keep_first_seen_order() -> None:
    fused = reciprocal_rank_fusion([_ranked(B), _ranked(A)])
    assert [r.chunk.id for r in fused] == ["b.ts:1", "a.ts:1"]


def test_top_k_and_custom_k() -> None:
    fused = reciprocal_rank_fusion([_ranked(A, B, C)], top_k=2, k=0)
    assert len(fused) == 2
    assert fused[0].score == pytest.approx(1.0)
    assert fused[1].score == pytest.approx(0.5)


def test_empty_input() -> None:
    assert reciprocal_rank_fusion([]) == []
    assert reciprocal_rank_fusion([[], []]) == []


def test_hybrid_searcher_breakdown() -> None:
    chunks = [
        make_chunk("hashPassword", "function hashPassword(pw) { return bcrypt.hash(pw); }", file_path="a.ts",
                   embedding=[1.0, 0.0]),
        make_chunk("render", "function render() { return html; }", file_path="b.ts", embedding=[0.0, 1.0]),
        make_chunk("bcryptConfig", "const rounds = 12;", file_path="src/bcrypt.ts", embedding=[0.6, 0.8]),
    ]
    searcher = HybridSearcher(create_code_index(chunks), create_metadata_index(chunks), VectorIndex(chunks))
    breakdown = searcher.search_with_breakdown("bcrypt", [1.0, 0.0])

    assert [r.chunk.name for r in breakdown.vector] == ["hashPassword", "bcryptConfig", "render"]
    assert [r.chunk.name for r in breakdown.lexical_code] == ["hashPassword"]
    assert [r.chunk.name for r in breakdown.lexical_metadata] == ["bcryptConfig"]
    assert breakdown.hybrid[0].chunk.name == "hashPassword"
    assert breakdown.hybrid[0].score == pytest.approx(2 / 61)
    assert {r.chunk.name for r in breakdown.hybrid} == {"hashPassword", "render", "bcryptConfig"}
    assert searcher.search("bcrypt", [1.0, 0.0]) == breakdown.hybrid
