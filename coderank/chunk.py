"""Core value types shared by every stage of the engine.

A :class:`Chunk` is the atomic retrievable unit: a function, class, markdown
section or manifest file with a stable id and an exact line span. Chunks are
frozen; stages that need to attach data (embeddings, compressed code) build a
new value with :func:`dataclasses.replace` so that a completed index can be
shared across concurrent queries without locking.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import StrEnum


class ChunkKind(StrEnum):
    """Kind of unit a chunk represents."""

    FUNCTION = "function"
    METHOD = "method"
    CLASS = "class"
    COMPONENT = "component"
    INTERFACE = "interface"
    CONSTANT = "constant"
    README = "readme"
    DOCUMENTATION = "documentation"
    METADATA = "metadata"


CODE_KINDS: frozenset[ChunkKind] = frozenset(
    {
        ChunkKind.FUNCTION,
        ChunkKind.METHOD,
        ChunkKind.CLASS,
        ChunkKind.COMPONENT,
        ChunkKind.INTERFACE,
        ChunkKind.CONSTANT,
    }
)


def make_chunk_id(file_path: str, start_line: int) -> str:
    """Deterministic chunk id, stable across rebuilds of the same content."""
    return f"{file_path}:{start_line}"


@dataclass(frozen=True)
class Chunk:
    """A contiguous unit of code or documentation extracted from one file."""

    id: str
    file_path: str
    start_line: int  # 1-indexed, inclusive
    end_line: int  # 1-indexed, inclusive
    kind: ChunkKind
    name: str
    language: str
    code: str
    doc_comment: str | None = None
    parent_class: str | None = None
    imports: tuple[str, ...] = ()
    calls: tuple[str, ...] = ()
    keywords: tuple[str, ...] = ()
    dependencies: tuple[str, ...] = ()
    embedding: tuple[float, ...] | None = field(default=None, repr=False, compare=False)
    compressed: bool = False
    original_size: int | None = None

    def __post_init__(self) -> None:
        if self.start_line < 1:
            raise ValueError(f"chunk {self.id}: start_line must be >= 1, got {self.start_line}")
        if self.start_line > self.end_line:
            raise ValueError(f"chunk {self.id}: start_line {self.start_line} > end_line {self.end_line}")

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line + 1

    @property
    def is_code(self) -> bool:
        return self.kind in CODE_KINDS

    def with_embedding(self, embedding: list[float] | tuple[float, ...]) -> Chunk:
        """Return a copy of this chunk carrying *embedding*."""
        return replace(self, embedding=tuple(float(x) for x in embedding))

    def with_compressed_code(self, code: str) -> Chunk:
        """Return a compressed copy of this chunk.

        Id and location are preserved, so the copy still points at the
        original span; only ``code`` changes. This is lossy: the line-slice
        round trip no longer holds for the returned value.
        """
        return replace(self, code=code, compressed=True, original_size=len(self.code))


@dataclass(frozen=True)
class RankedResult:
    """A chunk paired with a stage-specific score.

    Scores are only comparable within one stage: cosine similarity lies in
    [-1, 1], BM25 is unbounded, RRF lies in (0, 1] and relevance in [0, 10].
    """

    chunk: Chunk
    score: float
    explanation: str = ""


@dataclass(frozen=True)
class SearchBreakdown:
    """Every intermediate ranking produced while answering one query."""

    vector: list[RankedResult]
    lexical_code: list[RankedResult]
    lexical_metadata: list[RankedResult]
    stage1: list[RankedResult]
    stage2: list[RankedResult]
    stage3: list[RankedResult]
