"""Hybrid code retrieval: structural chunking, BM25 + vector fusion and staged reranking."""

from coderank.chunk import Chunk, ChunkKind, RankedResult, SearchBreakdown
from coderank.chunker import StructuralChunker
from coderank.config import EngineSettings
from coderank.embedder import Embedder, EmbeddingError, LiteLLMEmbedder
from coderank.engine import CodeSearchEngine, IndexBuildError, IndexNotBuiltError
from coderank.graph import RelationshipGraph
from coderank.llm import LiteLLMClient, LLMError
from coderank.models import IndexFile, IndexStats, RelevanceScore
from coderank.parsers import ParserRegistry, UnsupportedLanguageError
from coderank.scoring import Compressor, LLMCompressor, LLMRelevanceScorer, RelevanceScorer
from coderank.workspace import load_workspace

__all__ = [
    "Chunk",
    "ChunkKind",
    "CodeSearchEngine",
    "Compressor",
    "Embedder",
    "EmbeddingError",
    "EngineSettings",
    "IndexBuildError",
    "IndexFile",
    "IndexNotBuiltError",
    "IndexStats",
    "LLMCompressor",
    "LLMError",
    "LLMRelevanceScorer",
    "LiteLLMClient",
    "LiteLLMEmbedder",
    "ParserRegistry",
    "RankedResult",
    "RelationshipGraph",
    "RelevanceScore",
    "RelevanceScorer",
    "SearchBreakdown",
    "StructuralChunker",
    "UnsupportedLanguageError",
    "load_workspace",
]
