"""Relationship graph over chunks, built from statically extracted call names.

Edges are name based: a chunk that calls ``checkUser`` is linked to every
chunk named ``checkUser``. Names with several definitions (overloads,
duplicates across files) link to all of them.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Sequence

    from coderank.chunk import Chunk

logger = structlog.get_logger()

_ANONYMOUS = "anonymous"
_ENTRY_PATH_MARKERS: tuple[str, ...] = ("route", "controller", "handler")


@dataclass(frozen=True)
class Flow:
    """An entry point and the chunks reachable from it."""

    entry: Chunk
    related: list[Chunk] = field(default_factory=list)


class RelationshipGraph:
    """Directed call graph between chunks with reachability queries."""

    def __init__(self, chunks: Sequence[Chunk]) -> None:
        self._chunks: list[Chunk] = list(chunks)
        self._by_id: dict[str, Chunk] = {}
        self._order: dict[str, int] = {}
        # chunk id -> names it calls
        self._call_edges: dict[str, tuple[str, ...]] = {}
        # called name -> ids of chunks calling it
        self._callers: dict[str, list[str]] = {}
        # defined name -> ids of chunks defining it
        self._definitions: dict[str, list[str]] = {}
        self._build()

    def _build(self) -> None:
        for position, chunk in enumerate(self._chunks):
            if chunk.id in self._by_id:
                continue
            self._by_id[chunk.id] = chunk
            self._order[chunk.id] = position

            if chunk.calls:
                self._call_edges[chunk.id] = chunk.calls
                for name in chunk.calls:
                    self._callers.setdefault(name, []).append(chunk.id)

            if chunk.is_code and chunk.name and chunk.name != _ANONYMOUS:
                self._definitions.setdefault(chunk.name, []).append(chunk.id)

        logger.debug("relationship graph built", **self.stats())

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, chunk_id: str) -> Chunk | None:
        return self._by_id.get(chunk_id)

    def find_related(self, chunk_id: str, max_depth: int = 3) -> list[Chunk]:
        """Chunks reachable from *chunk_id* within *max_depth* call hops.

        Ordered by ascending hop distance, then discovery order. The start
        chunk is never included and each chunk is visited at most once, so
        call cycles terminate.
        """
        if max_depth <= 0 or chunk_id not in self._by_id:
            return []

        visited: set[str] = {chunk_id}
        queue: deque[tuple[str, int]] = deque([(chunk_id, 0)])
        related: list[Chunk] = []

        while queue:
            current_id, depth = queue.popleft()
            if depth > 0:
                related.append(self._by_id[current_id])
            if depth >= max_depth:
                continue

            for name in self._call_edges.get(current_id, ()):
                for target_id in self._definitions.get(name, ()):
                    if target_id in visited:
                        continue
                    visited.add(target_id)
                    queue.append((target_id, depth + 1))

        return related

    def find_callers(self, name: str) -> list[Chunk]:
        """Chunks that call *name*, in chunk order."""
        return [self._by_id[cid] for cid in self._callers.get(name, ())]

    def find_definitions(self, name: str) -> list[Chunk]:
        """Every chunk defining *name*, in chunk order."""
        return [self._by_id[cid] for cid in self._definitions.get(name, ())]

    def stats(self) -> dict[str, int]:
        return {
            "total_chunks": len(self._by_id),
            "chunks_with_calls": len(self._call_edges),
            "unique_names": len(self._definitions),
            "total_call_edges": sum(len(calls) for calls in self._call_edges.values()),
        }

    # ------------------------------------------------------------------
    # Feature discovery
    # ------------------------------------------------------------------

    def find_entry_points(self, limit: int = 10, min_calls: int = 3) -> list[Chunk]:
        """Chunks likely to start a user-facing flow.

        A code chunk qualifies when it is exported, lives under a
        route/controller/handler path, or makes at least *min_calls* calls.
        Candidates rank by fewest callers, then most calls, then chunk order.
        When nothing qualifies the first *limit* code chunks in chunk order
        are returned instead.
        """
        if limit <= 0:
            return []

        code_chunks = [c for c in self._by_id.values() if c.is_code]
        candidates = [
            c
            for c in code_chunks
            if _is_exported(c)
            or any(marker in c.file_path.lower() for marker in _ENTRY_PATH_MARKERS)
            or len(c.calls) >= min_calls
        ]
        if not candidates:
            logger.info("no entry points found, falling back to chunk order", chunks=len(code_chunks))
            return code_chunks[:limit]

        candidates.sort(key=lambda c: (len(self._callers.get(c.name, ())), -len(c.calls), self._order[c.id]))
        return candidates[:limit]

    def trace_flows(self, limit: int = 10, max_depth: int = 3, min_calls: int = 3) -> list[Flow]:
        """Pair each entry point with the chunks it reaches."""
        return [
            Flow(entry=entry, related=self.find_related(entry.id, max_depth))
            for entry in self.find_entry_points(limit=limit, min_calls=min_calls)
        ]


def _is_exported(chunk: Chunk) -> bool:
    """Language-specific notion of a public, top-level symbol."""
    head = chunk.code.lstrip()
    if chunk.language in {"javascript", "typescript", "tsx"}:
        return head.startswith("export ")
    if chunk.language == "rust":
        return head.startswith("pub ")
    if chunk.language == "go":
        return chunk.name[:1].isupper()
    if chunk.language == "python":
        return chunk.parent_class is None and not chunk.name.startswith("_") and not chunk.code[:1].isspace()
    return False
