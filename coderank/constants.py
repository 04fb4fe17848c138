"""Centralized constants for the coderank engine.

All tunables that several modules share are collected here for easy
discovery and consistent usage.
"""

from __future__ import annotations

# -- Lexical index (BM25) ----------------------------------------------------
BM25_K1 = 1.2  # Term frequency saturation.
BM25_B = 0.75  # Length normalization.

# -- Fusion ------------------------------------------------------------------
RRF_K = 60  # Reciprocal Rank Fusion damping constant.

# -- Reranking funnel --------------------------------------------------------
HYBRID_TOP_K = 100  # Stage 1: candidates kept from each retriever and after fusion.
EMBEDDING_RERANK_TOP_K = 30  # Stage 2: embedding-similarity rerank.
RELEVANCE_RERANK_TOP_K = 10  # Stage 3: external relevance scoring.
RELEVANCE_SCORE_MAX = 10.0
SCORING_CONCURRENCY = 10  # Concurrent relevance scoring calls.
DEFAULT_LLM_MODEL = "gpt-4o-mini"  # Relevance scoring and compression.

# -- Embeddings --------------------------------------------------------------
DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"
EMBEDDING_BATCH_SIZE = 50  # Chunks per embedding request.
EMBEDDING_CONCURRENT_BATCHES = 10  # Batches in flight at once.
MAX_EMBEDDING_CODE_SIZE = 10_000  # Code chars included in the embedding text.

# -- Compression -------------------------------------------------------------
COMPRESSION_THRESHOLD = 2_000  # Chunks above this many chars are compressed.
MAX_COMPRESSIBLE_SIZE = 30_000  # Chunks above this are never compressed.
COMPRESSION_CONCURRENCY = 5

# -- Chunking ----------------------------------------------------------------
DOC_COMMENT_LOOKBACK = 10  # Lines scanned above a unit for its doc comment.
CHUNKING_WORKERS = 4
