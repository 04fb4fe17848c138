"""Structural chunker: splits source files into semantic units using tree-sitter.

Every syntax node whose ``(language, node type)`` pair appears in
``NODE_KIND_MAP`` becomes one chunk, so nested units (methods inside classes,
closures inside functions) are emitted alongside their parents. Markdown and
manifest files are routed to :mod:`coderank.noncode`.
"""

from __future__ import annotations

import re
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from coderank._tree_sitter_common import (
    CALL_NODE_FIELDS,
    IDENTIFIER_NODE_TYPES,
    JSX_LANGUAGES,
    JSX_NODE_TYPES,
    MEMBER_NAME_FIELDS,
    NODE_KIND_MAP,
)
from coderank.chunk import Chunk, ChunkKind, make_chunk_id
from coderank.constants import CHUNKING_WORKERS, DOC_COMMENT_LOOKBACK
from coderank.noncode import chunk_non_code_file, should_index_non_code
from coderank.parsers import ParserRegistry, detect_language

if TYPE_CHECKING:
    from collections.abc import Sequence

    from tree_sitter import Node

    from coderank.models import IndexFile

logger = structlog.get_logger()

# Rust impl and trait blocks scope methods the way a class does.
_CONTAINER_NODE_TYPES: frozenset[str] = frozenset({"impl_item", "trait_item"})

_IMPORT_PREFIXES: tuple[str, ...] = ("import ", "import(", "from ", "use ")

_LOWER_UPPER = re.compile(r"([a-z0-9])([A-Z])")
_ACRONYM_WORD = re.compile(r"([A-Z]+)([A-Z][a-z])")
_WORD_SPLIT = re.compile(r"[^A-Za-z0-9]+")


@dataclass
class _FileContext:
    """Per-file state shared by the tree walk."""

    path: str
    language: str
    lines: list[str]
    kinds: dict[str, ChunkKind]
    chunks: list[Chunk] = field(default_factory=list)
    seen_ids: set[str] = field(default_factory=set)


class StructuralChunker:
    """Turns (path, content) pairs into chunks."""

    def __init__(self, registry: ParserRegistry | None = None) -> None:
        self._registry = registry or ParserRegistry()

    @property
    def registry(self) -> ParserRegistry:
        return self._registry

    def should_index(self, path: str) -> bool:
        return should_index_non_code(path) or self._registry.supports(path)

    def chunk_file(self, path: str, content: str) -> list[Chunk]:
        """Chunk a single file; unsupported or unparsable files yield ``[]``."""
        if should_index_non_code(path):
            return chunk_non_code_file(path, content)

        language = detect_language(path)
        if language is None or language not in self._registry.supported_languages:
            return []

        try:
            tree = self._registry.parse(language, content.encode("utf-8"))
        except Exception:
            logger.warning("parse failed", path=path, language=language, exc_info=True)
            return []

        ctx = _FileContext(
            path=path,
            language=language,
            lines=content.split("\n"),
            kinds=NODE_KIND_MAP[language],
        )
        try:
            self._walk(ctx, tree.root_node)
        except Exception:
            logger.warning("chunk extraction failed", path=path, language=language, exc_info=True)
            return []
        return ctx.chunks

    def chunk_files(self, files: Sequence[IndexFile], max_workers: int = CHUNKING_WORKERS) -> list[list[Chunk]]:
        """Chunk many files concurrently; the result is parallel to *files*."""
        if not files:
            return []
        if max_workers <= 1 or len(files) == 1:
            return [self.chunk_file(f.path, f.content) for f in files]
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="chunker") as pool:
            return list(pool.map(lambda f: self.chunk_file(f.path, f.content), files))

    # ------------------------------------------------------------------
    # Tree walk
    # ------------------------------------------------------------------

    def _walk(self, ctx: _FileContext, root: Node) -> None:
        """Depth-first walk emitting one chunk per mapped node.

        Iterative so deeply nested sources cannot exhaust the recursion
        limit. Mapped nodes push an exit marker so the enclosing-class stack
        is restored when their subtree is left.
        """
        stack: list[tuple[Node, bool]] = [(root, True)]
        class_stack: list[str] = []
        # One entry per open mapped ancestor: does it scope methods?
        container_stack: list[bool] = []

        while stack:
            node, entering = stack.pop()
            kind = ctx.kinds.get(node.type)

            if not entering:
                if container_stack.pop():
                    class_stack.pop()
                continue

            if kind is not None:
                is_container = kind is ChunkKind.CLASS or node.type in _CONTAINER_NODE_TYPES
                if kind is ChunkKind.FUNCTION and container_stack and container_stack[-1]:
                    kind = ChunkKind.METHOD

                name = _extract_name(node)
                parent_class: str | None = None
                if kind is ChunkKind.METHOD:
                    parent_class = _go_receiver_type(node) or (class_stack[-1] if class_stack else None)
                elif kind is ChunkKind.FUNCTION and _is_component(ctx.language, name, node):
                    kind = ChunkKind.COMPONENT

                self._emit(ctx, node, kind, name, parent_class)

                container_stack.append(is_container)
                if is_container:
                    class_stack.append(name)
                stack.append((node, False))

            for child in reversed(node.children):
                stack.append((child, True))

    def _emit(
        self,
        ctx: _FileContext,
        node: Node,
        kind: ChunkKind,
        name: str,
        parent_class: str | None,
    ) -> None:
        span = node.parent if node.parent is not None and node.parent.type == "decorated_definition" else node
        start_row = span.start_point[0]
        end_row = node.end_point[0]
        # A node ending at column 0 stops at the end of the previous line.
        if node.end_point[1] == 0 and end_row > start_row:
            end_row -= 1

        start_line = start_row + 1
        chunk_id = make_chunk_id(ctx.path, start_line)
        if chunk_id in ctx.seen_ids:
            return
        ctx.seen_ids.add(chunk_id)

        code = "\n".join(ctx.lines[start_row : end_row + 1])
        ctx.chunks.append(
            Chunk(
                id=chunk_id,
                file_path=ctx.path,
                start_line=start_line,
                end_line=end_row + 1,
                kind=kind,
                name=name,
                language=ctx.language,
                code=code,
                doc_comment=extract_doc_comment(ctx.lines, start_row),
                parent_class=parent_class,
                imports=extract_imports(code),
                calls=_extract_calls(node),
                keywords=extract_keywords(name, kind, ctx.path, parent_class),
            )
        )


# ---------------------------------------------------------------------------
# Extraction helpers
# ---------------------------------------------------------------------------


def _text(node: Node) -> str:
    return node.text.decode("utf-8", errors="replace") if node.text is not None else ""


def _extract_name(node: Node) -> str:  # noqa: C901
    """Extract the symbol name from a definition node."""
    if node.type == "impl_item":
        type_node = node.child_by_field_name("type")
        if type_node is not None:
            return _text(type_node)

    for field_name in ("name", "identifier", "id"):
        name_node = node.child_by_field_name(field_name)
        if name_node is not None:
            return _text(name_node)

    # Go: type_declaration -> type_spec -> name
    if node.type == "type_declaration":
        for child in node.children:
            if child.type in {"type_spec", "type_alias"}:
                spec_name = child.child_by_field_name("name")
                if spec_name is not None:
                    return _text(spec_name)

    # JS/TS: const handler = () => {} takes the declarator's name
    if node.type in {"arrow_function", "function_expression", "function"}:
        parent = node.parent
        if parent is not None and parent.type in {"variable_declarator", "public_field_definition", "pair"}:
            key = parent.child_by_field_name("name") or parent.child_by_field_name("key")
            if key is not None:
                return _text(key)
        # the only identifier left would be a parameter
        return "anonymous"

    for child in node.children:
        if child.type in {"identifier", "type_identifier"}:
            return _text(child)

    return "anonymous"


def _go_receiver_type(node: Node) -> str | None:
    """Return the receiver type of a Go method declaration."""
    if node.type != "method_declaration":
        return None
    receiver = node.child_by_field_name("receiver")
    if receiver is None:
        return None
    found = _first_descendant(receiver, frozenset({"type_identifier"}))
    return _text(found) if found is not None else None


def _first_descendant(node: Node, types: frozenset[str]) -> Node | None:
    stack = list(reversed(node.children))
    while stack:
        current = stack.pop()
        if current.type in types:
            return current
        stack.extend(reversed(current.children))
    return None


def _is_component(language: str, name: str, node: Node) -> bool:
    """An upper-case JS/TSX function that renders JSX is a component."""
    if language not in JSX_LANGUAGES or not name[:1].isupper():
        return False
    return _first_descendant(node, JSX_NODE_TYPES) is not None


def _callee_name(call: Node) -> str | None:
    target = call.child_by_field_name(CALL_NODE_FIELDS[call.type])
    while target is not None:
        if target.type in IDENTIFIER_NODE_TYPES:
            return _text(target)
        member_field = MEMBER_NAME_FIELDS.get(target.type)
        if member_field is None:
            return None
        target = target.child_by_field_name(member_field)
    return None


def _extract_calls(node: Node) -> tuple[str, ...]:
    """Ordered, de-duplicated names of every function called inside *node*."""
    calls: dict[str, None] = {}
    stack = list(reversed(node.children))
    while stack:
        current = stack.pop()
        if current.type in CALL_NODE_FIELDS:
            name = _callee_name(current)
            if name:
                calls.setdefault(name, None)
        stack.extend(reversed(current.children))
    return tuple(calls)


def _is_comment_line(line: str) -> bool:
    return line.startswith(("/**", "/*", "*", "//", "#")) or line.endswith("*/")


def extract_doc_comment(lines: list[str], start_row: int, lookback: int = DOC_COMMENT_LOOKBACK) -> str | None:
    """Collect the comment block directly above the 0-indexed *start_row*.

    Recognizes block comments (``/** ... */``), line comments (``//``,
    ``///``, ``#``) and a closing Python docstring delimiter, which ends the
    scan. Blank lines and Rust attributes are skipped; any other line stops
    the scan. Lines are returned verbatim in source order.
    """
    collected: list[str] = []
    for row in range(start_row - 1, max(start_row - lookback, 0) - 1, -1):
        raw = lines[row].rstrip("\r")
        stripped = raw.strip()
        if not stripped or stripped.startswith(("#[", "#![")):
            continue
        if stripped.startswith(('"""', "'''")):
            collected.append(raw)
            break
        if _is_comment_line(stripped):
            collected.append(raw)
            continue
        break
    if not collected:
        return None
    collected.reverse()
    return "\n".join(collected)


def extract_imports(code: str) -> tuple[str, ...]:
    """Naive scan of import-like lines inside a unit."""
    imports: list[str] = []
    for line in code.split("\n"):
        stripped = line.strip()
        if stripped.startswith(_IMPORT_PREFIXES) or "require(" in stripped:
            imports.append(stripped)
    return tuple(imports)


def split_identifier(name: str) -> list[str]:
    """Split camelCase, PascalCase and snake_case into lower-case words."""
    spaced = _ACRONYM_WORD.sub(r"\1 \2", _LOWER_UPPER.sub(r"\1 \2", name))
    return [w.lower() for w in _WORD_SPLIT.split(spaced) if w]


def extract_keywords(name: str, kind: ChunkKind, path: str, parent_class: str | None) -> tuple[str, ...]:
    """Keywords for the metadata index: name, kind, file stem, name words, class."""
    keywords: list[str] = [name, str(kind)]
    stem = path.rsplit("/", 1)[-1].split(".", 1)[0]
    if stem:
        keywords.append(stem)
    keywords.extend(w for w in split_identifier(name) if len(w) > 2)
    if parent_class:
        keywords.append(parent_class)
    return tuple(dict.fromkeys(keywords))


def chunk_stats(chunks: Sequence[Chunk]) -> dict[str, object]:
    """Counts by kind and language plus size figures for a chunk list."""
    by_kind = Counter(str(c.kind) for c in chunks)
    by_language = Counter(c.language for c in chunks)
    total_size = sum(len(c.code) for c in chunks)
    return {
        "total_chunks": len(chunks),
        "by_kind": dict(by_kind),
        "by_language": dict(by_language),
        "average_size": round(total_size / len(chunks)) if chunks else 0,
        "total_size": total_size,
    }
