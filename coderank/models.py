"""Pydantic models for data exchanged with the engine's collaborators."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from coderank.constants import RELEVANCE_SCORE_MAX


class IndexFile(BaseModel):
    """A source file handed to the engine by a repository fetcher."""

    path: str
    content: str

    @field_validator("path")
    @classmethod
    def _normalize_separators(cls, v: str) -> str:
        """Windows-style paths are stored with forward slashes."""
        return v.replace("\\", "/")


class RelevanceScore(BaseModel):
    """Result of scoring one (query, chunk) pair."""

    total: float = Field(ge=0.0, le=RELEVANCE_SCORE_MAX)
    explanation: str = ""

    @field_validator("total", mode="before")
    @classmethod
    def _clamp_total(cls, v: float) -> float:
        """LLM judges occasionally overshoot the scale; clamp rather than reject."""
        return max(0.0, min(float(v), RELEVANCE_SCORE_MAX))


class IndexStats(BaseModel):
    """Summary of a completed index build."""

    status: str  # "ready" or "empty"
    file_count: int = 0
    chunk_count: int = 0
    embedded_count: int = 0
    compressed_count: int = 0
    embedding_dimension: int = 0
    by_kind: dict[str, int] = Field(default_factory=dict)
    by_language: dict[str, int] = Field(default_factory=dict)
    code_vocabulary: int = 0
    metadata_vocabulary: int = 0
