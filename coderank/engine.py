"""CodeSearchEngine: builds the hybrid index and answers ranked queries."""

from __future__ import annotations

import asyncio
from collections import Counter
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from coderank.chunk import ChunkKind, SearchBreakdown
from coderank.chunker import StructuralChunker
from coderank.config import EngineSettings
from coderank.embedder import EmbeddingError, LiteLLMEmbedder, embed_chunks
from coderank.fusion import HybridSearcher
from coderank.graph import RelationshipGraph
from coderank.lexical import create_code_index, create_metadata_index
from coderank.llm import LiteLLMClient
from coderank.logger import setup_logging
from coderank.models import IndexStats
from coderank.rerank import RerankPipeline
from coderank.scoring import LLMCompressor, LLMRelevanceScorer
from coderank.vector import VectorIndex

if TYPE_CHECKING:
    from collections.abc import Sequence

    from coderank.chunk import Chunk, RankedResult
    from coderank.embedder import Embedder
    from coderank.lexical import LexicalIndex
    from coderank.models import IndexFile
    from coderank.parsers import ParserRegistry
    from coderank.scoring import Compressor, RelevanceScorer

logger = structlog.get_logger()

# Embedding priority when the embed budget is smaller than the chunk count.
_KIND_PRIORITY: dict[ChunkKind, int] = {
    ChunkKind.FUNCTION: 4,
    ChunkKind.CLASS: 3,
    ChunkKind.METHOD: 2,
}


class IndexNotBuiltError(RuntimeError):
    """Raised when querying an engine whose index has not been built."""


class IndexBuildError(RuntimeError):
    """Raised when an index build fails for a reason other than embedding."""


@dataclass(frozen=True)
class _IndexState:
    """Everything one completed build produced. Read-only once published."""

    chunks: list[Chunk]
    originals: dict[str, Chunk]
    by_id: dict[str, Chunk]
    graph: RelationshipGraph
    code_index: LexicalIndex
    metadata_index: LexicalIndex
    vector_index: VectorIndex
    searcher: HybridSearcher
    stats: IndexStats


def prioritize_for_embedding(chunks: Sequence[Chunk], limit: int) -> list[Chunk]:
    """Pick the *limit* chunks most worth embedding.

    Functions first, then classes, then methods, then everything else; larger
    code first within a kind. Ties keep chunk order.
    """
    ranked = sorted(chunks, key=lambda c: (-_KIND_PRIORITY.get(c.kind, 1), -len(c.code)))
    return ranked[: max(0, limit)]


class CodeSearchEngine:
    """Hybrid code search over one repository snapshot.

    ``build`` chunks the files, optionally compresses oversized chunks,
    embeds them and builds the graph, lexical and vector indexes. A rebuild
    swaps in a complete new state only when it finishes, so queries running
    meanwhile keep seeing the previous index.
    """

    def __init__(
        self,
        embedder: Embedder,
        scorer: RelevanceScorer,
        compressor: Compressor | None = None,
        settings: EngineSettings | None = None,
        registry: ParserRegistry | None = None,
    ) -> None:
        self._embedder = embedder
        self._compressor = compressor
        self._settings = settings or EngineSettings()
        self._chunker = StructuralChunker(registry)
        self._pipeline = RerankPipeline(
            scorer,
            stage2_top_k=self._settings.stage2_top_k,
            stage3_top_k=self._settings.stage3_top_k,
            scoring_concurrency=self._settings.scoring_concurrency,
        )
        self._state: _IndexState | None = None
        self._clients: list[LiteLLMClient | LiteLLMEmbedder] = []

    @classmethod
    def from_settings(
        cls,
        settings: EngineSettings | None = None,
        registry: ParserRegistry | None = None,
        configure_logging: bool = True,
    ) -> CodeSearchEngine:
        """Create an engine backed by the LiteLLM Proxy.

        The embedder, relevance scorer and compressor all talk to
        ``settings.litellm_url``. Call :meth:`close` when done.
        """
        settings = settings or EngineSettings()
        if configure_logging:
            setup_logging(
                service=settings.log_service,
                level=settings.log_level,
                log_format=settings.log_format,
                stream=settings.log_stream,
            )

        llm = LiteLLMClient(base_url=settings.litellm_url, api_key=settings.litellm_api_key)
        embedder = LiteLLMEmbedder(
            base_url=settings.litellm_url,
            api_key=settings.litellm_api_key,
            model=settings.embedding_model,
        )
        compressor = LLMCompressor(llm, model=settings.llm_model) if settings.compression_enabled else None
        engine = cls(
            embedder=embedder,
            scorer=LLMRelevanceScorer(llm, model=settings.llm_model),
            compressor=compressor,
            settings=settings,
            registry=registry,
        )
        engine._clients = [llm, embedder]
        logger.info(
            "engine created",
            litellm_url=settings.litellm_url,
            embedding_model=settings.embedding_model,
            llm_model=settings.llm_model,
        )
        return engine

    async def close(self) -> None:
        """Close HTTP clients created by :meth:`from_settings`."""
        for client in self._clients:
            await client.close()
        self._clients = []

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    @property
    def is_built(self) -> bool:
        return self._state is not None

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    async def build(self, files: Sequence[IndexFile], max_chunks_to_embed: int | None = None) -> IndexStats:
        """Index *files*, replacing any previous index on success."""
        log = logger.bind(files=len(files))
        log.info("building index")

        try:
            per_file = await asyncio.to_thread(self._chunker.chunk_files, list(files), self._settings.chunking_workers)
            originals = [chunk for file_chunks in per_file for chunk in file_chunks]
            log.info("files chunked", chunks=len(originals))

            chunks = list(originals)
            if self._compressor is not None and self._settings.compression_enabled:
                chunks = await self._compress(self._compressor, chunks)

            to_embed = chunks
            if max_chunks_to_embed is not None and len(chunks) > max_chunks_to_embed:
                to_embed = prioritize_for_embedding(chunks, max_chunks_to_embed)
                log.info("embedding budget applied", selected=len(to_embed), excluded=len(chunks) - len(to_embed))

            embedded = await embed_chunks(
                to_embed,
                self._embedder,
                batch_size=self._settings.embedding_batch_size,
                max_concurrent_batches=self._settings.embedding_concurrent_batches,
            )
            embedded_by_id = {chunk.id: chunk for chunk in embedded}
            chunks = [embedded_by_id.get(chunk.id, chunk) for chunk in chunks]

            state = self._assemble(len(files), originals, chunks)
        except EmbeddingError:
            log.exception("index build failed")
            raise
        except Exception as exc:
            log.exception("index build failed")
            raise IndexBuildError(f"index build failed: {exc}") from exc

        self._state = state
        log.info("index built", **state.stats.model_dump(exclude={"by_kind", "by_language"}))
        return state.stats

    async def _compress(self, compressor: Compressor, chunks: list[Chunk]) -> list[Chunk]:
        """Replace oversized chunks with compressed copies; failures keep the original."""
        settings = self._settings

        targets = [
            idx
            for idx, chunk in enumerate(chunks)
            if settings.compression_threshold < len(chunk.code) <= settings.max_compressible_size
        ]
        too_large = sum(1 for chunk in chunks if len(chunk.code) > settings.max_compressible_size)
        if too_large:
            logger.warning("skipping compression of oversized chunks", count=too_large)
        if not targets:
            return list(chunks)

        semaphore = asyncio.Semaphore(max(1, settings.compression_concurrency))

        async def compress_one(chunk: Chunk) -> Chunk:
            async with semaphore:
                try:
                    code = await compressor.compress(chunk, settings.compression_threshold)
                except Exception:
                    logger.warning("chunk compression failed", chunk_id=chunk.id, exc_info=True)
                    return chunk
            if not code.strip():
                logger.warning("compressor returned empty code", chunk_id=chunk.id)
                return chunk
            return chunk.with_compressed_code(code)

        results = await asyncio.gather(*(compress_one(chunks[idx]) for idx in targets))
        compressed = list(chunks)
        for idx, chunk in zip(targets, results, strict=True):
            compressed[idx] = chunk

        done = [c for c in results if c.compressed]
        if done:
            before = sum(c.original_size or 0 for c in done)
            after = sum(len(c.code) for c in done)
            logger.info("chunks compressed", count=len(done), bytes_saved=before - after)
        return compressed

    def _assemble(self, file_count: int, originals: list[Chunk], chunks: list[Chunk]) -> _IndexState:
        code_index = create_code_index(chunks)
        metadata_index = create_metadata_index(chunks)
        vector_index = VectorIndex(chunks)

        stats = IndexStats(
            status="ready" if chunks else "empty",
            file_count=file_count,
            chunk_count=len(chunks),
            embedded_count=vector_index.size,
            compressed_count=sum(1 for c in chunks if c.compressed),
            embedding_dimension=vector_index.dimension,
            by_kind=dict(Counter(str(c.kind) for c in chunks)),
            by_language=dict(Counter(c.language for c in chunks)),
            code_vocabulary=code_index.vocabulary_size,
            metadata_vocabulary=metadata_index.vocabulary_size,
        )
        by_id: dict[str, Chunk] = {}
        for chunk in chunks:
            by_id.setdefault(chunk.id, chunk)
        original_by_id: dict[str, Chunk] = {}
        for chunk in originals:
            original_by_id.setdefault(chunk.id, chunk)

        return _IndexState(
            chunks=chunks,
            originals=original_by_id,
            by_id=by_id,
            graph=RelationshipGraph(chunks),
            code_index=code_index,
            metadata_index=metadata_index,
            vector_index=vector_index,
            searcher=HybridSearcher(code_index, metadata_index, vector_index),
            stats=stats,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _require_state(self) -> _IndexState:
        if self._state is None:
            raise IndexNotBuiltError("index not built; call build() first")
        return self._state

    async def search(self, query: str) -> list[RankedResult]:
        """Final ranked results for *query*, best first."""
        breakdown = await self.search_with_breakdown(query)
        return breakdown.stage3

    async def search_with_breakdown(self, query: str) -> SearchBreakdown:
        """Run the full funnel and return every intermediate ranking."""
        state = self._require_state()
        if state.vector_index.size == 0:
            logger.info("search against index without embeddings", query=query[:80])
            return SearchBreakdown(vector=[], lexical_code=[], lexical_metadata=[], stage1=[], stage2=[], stage3=[])

        query_embedding = await self._embedder.embed(query)
        hybrid = state.searcher.search_with_breakdown(query, query_embedding, self._settings.hybrid_top_k)
        stages = await self._pipeline.run(query, query_embedding, hybrid.hybrid)
        return SearchBreakdown(
            vector=hybrid.vector,
            lexical_code=hybrid.lexical_code,
            lexical_metadata=hybrid.lexical_metadata,
            stage1=stages.stage1,
            stage2=stages.stage2,
            stage3=stages.stage3,
        )

    def get_chunks(self) -> list[Chunk]:
        return list(self._require_state().chunks)

    def get_chunk(self, chunk_id: str) -> Chunk | None:
        return self._require_state().by_id.get(chunk_id)

    def get_original(self, chunk_id: str) -> Chunk | None:
        """The chunk as extracted from source, before any compression."""
        return self._require_state().originals.get(chunk_id)

    def find_related(self, chunk_id: str, max_depth: int = 3) -> list[Chunk]:
        return self._require_state().graph.find_related(chunk_id, max_depth)

    def find_callers(self, name: str) -> list[Chunk]:
        return self._require_state().graph.find_callers(name)

    def find_definitions(self, name: str) -> list[Chunk]:
        return self._require_state().graph.find_definitions(name)

    def find_entry_points(self, limit: int = 10, min_calls: int = 3) -> list[Chunk]:
        return self._require_state().graph.find_entry_points(limit=limit, min_calls=min_calls)

    def stats(self) -> IndexStats:
        return self._require_state().stats
