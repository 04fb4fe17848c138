"""Tests for the LLM-backed relevance scorer and compressor."""

from __future__ import annotations

import pytest

from coderank.scoring import (
    COMPRESSOR_SYSTEM,
    RANKER_SYSTEM,
    LLMCompressor,
    LLMRelevanceScorer,
    ScoringOutputError,
    compressor_prompt,
    ranker_prompt,
)
from tests.fake_llm import FakeLLM
from tests.fakes import make_chunk

CHUNK = make_chunk(
    "hashPassword",
    "function hashPassword(pw) {\n  return bcrypt.hash(pw, 10);\n}",
    file_path="src/auth.ts",
    doc_comment="// Hashes a password.",
    parent_class="AuthService",
)


async def test_scorer_parses_json_reply() -> None:
    llm = FakeLLM.from_json(
        {"score": 8, "relevance": 4, "completeness": 2, "quality": 2, "explanation": "Hashes passwords."}
    )
    scorer = LLMRelevanceScorer(llm, model="judge")  # type: ignore[arg-type]
    score = await scorer.score("where are passwords hashed", CHUNK)

    assert score.total == 8.0
    assert score.explanation == "Hashes passwords."

    (call,) = llm.calls
    assert call.model == "judge"
    assert call.system == RANKER_SYSTEM
    assert call.temperature == 0.0
    assert call.response_format == {"type": "json_object"}
    assert "where are passwords hashed" in call.prompt
    assert "bcrypt.hash" in call.prompt


async def test_scorer_clamps_out_of_range() -> None:
    llm = FakeLLM.from_json({"score": 13}, {"score": -2})
    scorer = LLMRelevanceScorer(llm)  # type: ignore[arg-type]
    assert (await scorer.score("q", CHUNK)).total == 10.0
    assert (await scorer.score("q", CHUNK)).total == 0.0


async def test_scorer_accepts_fenced_json() -> None:
    llm = FakeLLM.from_text('```json\n{"score": 6.5, "explanation": "close"}\n```')
    score = await LLMRelevanceScorer(llm).score("q", CHUNK)  # type: ignore[arg-type]
    assert score.total == 6.5


@pytest.mark.parametrize("reply", ["not json at all", '{"explanation": "missing score"}', '{"score": "high"}'])
async def test_scorer_rejects_bad_reply(reply: str) -> None:
    with pytest.raises(ScoringOutputError):
        await LLMRelevanceScorer(FakeLLM.from_text(reply)).score("q", CHUNK)  # type: ignore[arg-type]


async def test_compressor_returns_compressed_code() -> None:
    llm = FakeLLM.from_json(
        {
            "compressed": "function hashPassword(pw) { /* bcrypt */ }",
            "key_components": ["hashPassword"],
            "purpose": "Hash a password",
            "dependencies": ["bcrypt"],
        }
    )
    compressed = await LLMCompressor(llm).compress(CHUNK, target_size=40)  # type: ignore[arg-type]

    assert compressed == "function hashPassword(pw) { /* bcrypt */ }"
    (call,) = llm.calls
    assert call.system == COMPRESSOR_SYSTEM
    assert call.temperature == pytest.approx(0.1)
    assert call.response_format == {"type": "json_object"}


async def test_compressor_requires_compressed_field() -> None:
    llm = FakeLLM.from_json({"purpose": "nothing"})
    with pytest.raises(ScoringOutputError):
        await LLMCompressor(llm).compress(CHUNK, target_size=10)  # type: ignore[arg-type]


def test_ranker_prompt_fields() -> None:
    prompt = ranker_prompt("hash passwords", CHUNK)
    assert prompt.startswith("query:\nhash passwords")
    for expected in (
        "chunkType:\nfunction",
        "chunkName:\nhashPassword",
        "filePath:\nsrc/auth.ts",
        "language:\ntypescript",
        "documentation:\n// Hashes a password.",
        "parentClass:\nAuthService",
    ):
        assert expected in prompt
    assert prompt.endswith(f"code:\n{CHUNK.code}")


def test_ranker_prompt_omits_missing_fields() -> None:
    prompt = ranker_prompt("q", make_chunk("plain"))
    assert "documentation:" not in prompt
    assert "parentClass:" not in prompt


def test_compressor_prompt_reports_reduction() -> None:
    chunk = make_chunk("big", "x" * 1000)
    prompt = compressor_prompt(chunk, target_size=300)
    assert "currentSize:\n1000 characters" in prompt
    assert "targetSize:\n~300 characters (70% reduction)" in prompt
    assert "Compress this typescript function" in prompt
