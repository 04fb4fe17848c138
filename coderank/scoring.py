"""Relevance scoring and code compression capabilities backed by an LLM."""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING, Protocol, TypeVar

import structlog
from pydantic import BaseModel, Field, ValidationError

from coderank.llm import DEFAULT_MODEL
from coderank.models import RelevanceScore

if TYPE_CHECKING:
    from coderank.chunk import Chunk
    from coderank.llm import LiteLLMClient

logger = structlog.get_logger()

_JSON_OBJECT: dict[str, object] = {"type": "json_object"}
_FENCED = re.compile(r"^```[\w-]*\n(.*?)\n?```$", re.DOTALL)

T = TypeVar("T", bound=BaseModel)


class RelevanceScorer(Protocol):
    """Judges how well one chunk answers a query on a 0-10 scale."""

    async def score(self, query: str, chunk: Chunk) -> RelevanceScore: ...


class Compressor(Protocol):
    """Shortens a chunk's code toward a target size, preserving meaning."""

    async def compress(self, chunk: Chunk, target_size: int) -> str: ...


class ScoringOutputError(ValueError):
    """Raised when the LLM reply is not the JSON object that was asked for."""


RANKER_SYSTEM = """You are an expert code relevance evaluator.

Your task is to evaluate how well a code chunk matches a user's query.

Scoring rubric (0-10 total):

1. Relevance (0-4 points): 4 directly answers the query, 0 not related.
2. Completeness (0-3 points): 3 complete and self-contained, 0 does not answer it.
3. Quality (0-3 points): 3 right level of detail, 0 wrong abstraction level.

Rules:
- Be strict: most results should score 3-7
- Only give 9-10 for exceptional matches
- Consider the query's intent (feature vs implementation)

Respond with a JSON object with the keys "score", "relevance", "completeness",
"quality" and "explanation" (one or two sentences)."""

COMPRESSOR_SYSTEM = """You are an expert code compression specialist.

Compress code while preserving semantic meaning and structure:
- keep function signatures, class definitions, imports and key constants
- keep the core logic flow
- shorten verbose comments and repetitive or detailed implementation
- the result must still be valid, readable code

Respond with a JSON object with the keys "compressed" (the compressed code),
"key_components" (list of main functions or variables), "purpose" (one
sentence) and "dependencies" (list of imports used)."""


class RankerOutput(BaseModel):
    # out-of-range totals are clamped by RelevanceScore
    score: float
    relevance: float = 0.0
    completeness: float = 0.0
    quality: float = 0.0
    explanation: str = ""


class CompressorOutput(BaseModel):
    compressed: str
    key_components: list[str] = Field(default_factory=list)
    purpose: str = "Code chunk"
    dependencies: list[str] = Field(default_factory=list)


def _context_block(fields: dict[str, str]) -> str:
    return "\n\n".join(f"{key}:\n{value}" for key, value in fields.items())


def _parse_json_reply(content: str, schema: type[T]) -> T:
    text = content.strip()
    fenced = _FENCED.match(text)
    if fenced:
        text = fenced.group(1)
    try:
        return schema.model_validate(json.loads(text))
    except (json.JSONDecodeError, ValidationError) as exc:
        raise ScoringOutputError(f"invalid {schema.__name__} reply: {exc}") from exc


def ranker_prompt(query: str, chunk: Chunk) -> str:
    fields = {
        "query": query,
        "chunkType": str(chunk.kind),
        "chunkName": chunk.name,
        "filePath": chunk.file_path,
        "language": chunk.language,
    }
    if chunk.doc_comment:
        fields["documentation"] = chunk.doc_comment
    if chunk.parent_class:
        fields["parentClass"] = chunk.parent_class
    fields["code"] = chunk.code
    return _context_block(fields)


def compressor_prompt(chunk: Chunk, target_size: int) -> str:
    current = len(chunk.code)
    reduction = round((1 - target_size / current) * 100) if current else 0
    return _context_block(
        {
            "language": chunk.language,
            "type": str(chunk.kind),
            "name": chunk.name,
            "filePath": chunk.file_path,
            "currentSize": f"{current} characters",
            "targetSize": f"~{target_size} characters ({reduction}% reduction)",
            "code": chunk.code,
            "instructions": f"Compress this {chunk.language} {chunk.kind} while preserving its semantic meaning.",
        }
    )


class LLMRelevanceScorer:
    """Scores (query, chunk) pairs with one JSON-mode completion each."""

    def __init__(self, llm: LiteLLMClient, model: str = DEFAULT_MODEL, temperature: float = 0.0) -> None:
        self._llm = llm
        self._model = model
        self._temperature = temperature

    async def score(self, query: str, chunk: Chunk) -> RelevanceScore:
        resp = await self._llm.completion(
            prompt=ranker_prompt(query, chunk),
            model=self._model,
            system=RANKER_SYSTEM,
            temperature=self._temperature,
            response_format=_JSON_OBJECT,
        )
        output = _parse_json_reply(resp.content, RankerOutput)
        logger.debug("chunk scored", chunk_id=chunk.id, score=output.score)
        return RelevanceScore(total=output.score, explanation=output.explanation)


class LLMCompressor:
    """Compresses oversized chunks before embedding."""

    def __init__(self, llm: LiteLLMClient, model: str = DEFAULT_MODEL, temperature: float = 0.1) -> None:
        self._llm = llm
        self._model = model
        self._temperature = temperature

    async def compress(self, chunk: Chunk, target_size: int) -> str:
        resp = await self._llm.completion(
            prompt=compressor_prompt(chunk, target_size),
            model=self._model,
            system=COMPRESSOR_SYSTEM,
            temperature=self._temperature,
            response_format=_JSON_OBJECT,
        )
        output = _parse_json_reply(resp.content, CompressorOutput)
        logger.debug("chunk compressed", chunk_id=chunk.id, before=len(chunk.code), after=len(output.compressed))
        return output.compressed
