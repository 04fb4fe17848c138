"""Tests for cosine similarity and the dense vector index."""

from __future__ import annotations

import math

import pytest

from coderank.vector import DimensionMismatchError, VectorIndex, cosine_similarity
from tests.fakes import make_chunk


def test_cosine_similarity() -> None:
    assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
    assert cosine_similarity([1.0, 0.0], [-2.0, 0.0]) == pytest.approx(-1.0)
    assert cosine_similarity([1.0, 1.0], [1.0, 0.0]) == pytest.approx(1 / math.sqrt(2))


def test_cosine_similarity_zero_vector() -> None:
    assert cosine_similarity([0.0, 0.0], [1.0, 2.0]) == 0.0


def test_cosine_similarity_dimension_mismatch() -> None:
    with pytest.raises(DimensionMismatchError):
        cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])


def test_search_orders_by_similarity() -> None:
    index = VectorIndex(
        [
            make_chunk("east", file_path="e.ts", embedding=[1.0, 0.0]),
            make_chunk("north", file_path="n.ts", embedding=[0.0, 1.0]),
            make_chunk("northeast", file_path="ne.ts", embedding=[1.0, 1.0]),
        ]
    )
    results = index.search([1.0, 0.2])

    assert [r.chunk.name for r in results] == ["east", "northeast", "north"]
    assert results[0].score == pytest.approx(cosine_similarity([1.0, 0.0], [1.0, 0.2]), rel=1e-5)
    assert index.search([1.0, 0.2], top_k=1)[0].chunk.name == "east"


def test_chunks_without_embeddings_are_skipped() -> None:
    index = VectorIndex(
        [
            make_chunk("embedded", file_path="a.ts", embedding=[1.0, 0.0]),
            make_chunk("plain", file_path="b.ts"),
        ]
    )
    assert index.size == 1
    assert index.dimension == 2
    assert [r.chunk.name for r in index.search([0.5, 0.5])] == ["embedded"]


def test_empty_index() -> None:
    index = VectorIndex([make_chunk("plain")])
    assert index.size == 0
    assert index.dimension == 0
    assert index.search([1.0, 0.0]) == []


def test_zero_vectors_score_zero() -> None:
    index = VectorIndex(
        [
            make_chunk("zero", file_path="z.ts", embedding=[0.0, 0.0]),
            make_chunk("unit", file_path="u.ts", embedding=[0.0, 1.0]),
        ]
    )
    scores = {r.chunk.name: r.score for r in index.search([0.0, 1.0])}
    assert scores == {"unit": pytest.approx(1.0), "zero": 0.0}

    # a zero query scores everything 0 and keeps index order
    assert [(r.chunk.name, r.score) for r in index.search([0.0, 0.0])] == [("zero", 0.0), ("unit", 0.0)]


def test_query_dimension_mismatch() -> None:
    index = VectorIndex([make_chunk("a", embedding=[1.0, 0.0, 0.0])])
    with pytest.raises(DimensionMismatchError):
        index.search([1.0, 0.0])


def test_mixed_dimensions_rejected() -> None:
    with pytest.raises(DimensionMismatchError):
        VectorIndex(
            [
                make_chunk("a", file_path="a.ts", embedding=[1.0, 0.0]),
                make_chunk("b", file_path="b.ts", embedding=[1.0, 0.0, 0.0]),
            ]
        )


def test_top_k_zero() -> None:
    index = VectorIndex([make_chunk("a", embedding=[1.0])])
    assert index.search([1.0], top_k=0) == []
