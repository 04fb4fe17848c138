"""Tests for chunk value types and boundary models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from coderank.chunk import Chunk, ChunkKind, make_chunk_id
from coderank.models import IndexFile, IndexStats, RelevanceScore
from tests.fakes import make_chunk


def test_index_file_normalizes_separators() -> None:
    assert IndexFile(path="src\\auth\\login.ts", content="").path == "src/auth/login.ts"


def test_index_file_requires_content() -> None:
    with pytest.raises(ValidationError):
        IndexFile(path="a.ts")  # type: ignore[call-arg]


@pytest.mark.parametrize(("raw", "expected"), [(7.5, 7.5), (11, 10.0), (-1, 0.0), ("4", 4.0)])
def test_relevance_score_is_clamped(raw: object, expected: float) -> None:
    assert RelevanceScore(total=raw).total == expected  # type: ignore[arg-type]


def test_index_stats_defaults() -> None:
    stats = IndexStats(status="empty")
    assert stats.chunk_count == 0
    assert stats.by_kind == {}


def test_chunk_id() -> None:
    assert make_chunk_id("src/app.ts", 12) == "src/app.ts:12"


def test_chunk_rejects_bad_spans() -> None:
    with pytest.raises(ValueError, match="start_line must be >= 1"):
        make_chunk("a", start_line=0)
    with pytest.raises(ValueError, match="> end_line"):
        Chunk(
            id="a.ts:5",
            file_path="a.ts",
            start_line=5,
            end_line=4,
            kind=ChunkKind.FUNCTION,
            name="a",
            language="typescript",
            code="",
        )


def test_chunk_is_code() -> None:
    assert make_chunk("f").is_code
    assert not make_chunk("README", kind="readme", language="markdown").is_code


def test_with_embedding_returns_copy() -> None:
    chunk = make_chunk("f")
    embedded = chunk.with_embedding([1, 2])
    assert chunk.embedding is None
    assert embedded.embedding == (1.0, 2.0)
    # embeddings do not take part in equality
    assert embedded == chunk


def test_with_compressed_code_keeps_location() -> None:
    chunk = make_chunk("f", "function f() {\n  return 1;\n}", start_line=3)
    compressed = chunk.with_compressed_code("function f() { ... }")
    assert compressed.compressed
    assert compressed.original_size == len(chunk.code)
    assert (compressed.id, compressed.start_line, compressed.end_line) == (chunk.id, 3, 5)
    assert compressed.line_count == 3
    assert not chunk.compressed
