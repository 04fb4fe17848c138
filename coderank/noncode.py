"""Chunking for non-code files: READMEs, markdown docs and package manifests."""

from __future__ import annotations

import json
import re
import tomllib
from collections import Counter
from typing import Any

import structlog

from coderank._tree_sitter_common import MANIFEST_FILES, MARKDOWN_EXTENSIONS
from coderank.chunk import Chunk, ChunkKind, make_chunk_id

logger = structlog.get_logger()

_HEADING = re.compile(r"^(#{1,3})\s+(.+)$")
_BOLD = re.compile(r"\*\*([^*]+)\*\*")
_FENCE = re.compile(r"^\s*(```|~~~)")
_REQUIREMENT_NAME = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)")

_FALLBACK_KEYWORD_LIMIT = 20


def _basename(path: str) -> str:
    return path.rsplit("/", 1)[-1]


def is_markdown(path: str) -> bool:
    name = _basename(path)
    return "." in name and name.rsplit(".", 1)[1].lower() in MARKDOWN_EXTENSIONS


def is_readme(path: str) -> bool:
    return is_markdown(path) and _basename(path).rsplit(".", 1)[0].lower() == "readme"


def is_manifest(path: str) -> bool:
    return _basename(path) in MANIFEST_FILES


def should_index_non_code(path: str) -> bool:
    return is_markdown(path) or is_manifest(path)


def chunk_non_code_file(path: str, content: str) -> list[Chunk]:
    """Route a non-code file to its chunking strategy."""
    if is_readme(path):
        return [chunk_readme(path, content)]
    if is_markdown(path):
        return chunk_markdown_sections(path, content)
    if is_manifest(path):
        return [chunk_manifest(path, content)]
    return []


# ---------------------------------------------------------------------------
# Markdown
# ---------------------------------------------------------------------------


def _long_words(text: str) -> list[str]:
    return [w for w in text.lower().split() if len(w) > 3]


def markdown_keywords(content: str) -> list[str]:
    """Words from level 1-3 headings and bold spans."""
    keywords: list[str] = []
    for line in content.split("\n"):
        match = _HEADING.match(line)
        if match:
            keywords.extend(_long_words(match.group(2)))
    for bold in _BOLD.findall(content):
        keywords.extend(_long_words(bold))
    return list(dict.fromkeys(keywords))


def chunk_readme(path: str, content: str) -> Chunk:
    """A README is a single chunk spanning the whole file."""
    lines = content.split("\n")
    keywords = ["readme", "documentation", *markdown_keywords(content)]
    return Chunk(
        id=make_chunk_id(path, 1),
        file_path=path,
        start_line=1,
        end_line=len(lines),
        kind=ChunkKind.README,
        name="README",
        language="markdown",
        code=content,
        keywords=tuple(dict.fromkeys(keywords)),
    )


def _heading_rows(lines: list[str]) -> list[tuple[int, str]]:
    """0-indexed rows and titles of level 1-3 headings outside code fences."""
    headings: list[tuple[int, str]] = []
    in_fence = False
    for row, line in enumerate(lines):
        if _FENCE.match(line):
            in_fence = not in_fence
            continue
        if in_fence:
            continue
        match = _HEADING.match(line.rstrip("\r"))
        if match:
            headings.append((row, match.group(2).strip()))
    return headings


def _section_chunk(path: str, lines: list[str], start_row: int, end_row: int, name: str) -> Chunk:
    code = "\n".join(lines[start_row : end_row + 1])
    keywords = [name.lower(), *markdown_keywords(code)] if name else markdown_keywords(code)
    return Chunk(
        id=make_chunk_id(path, start_row + 1),
        file_path=path,
        start_line=start_row + 1,
        end_line=end_row + 1,
        kind=ChunkKind.DOCUMENTATION,
        name=name,
        language="markdown",
        code=code,
        keywords=tuple(dict.fromkeys(keywords)),
    )


def chunk_markdown_sections(path: str, content: str) -> list[Chunk]:
    """Split markdown at level 1-3 headings, one chunk per section.

    A section runs from its heading to the line before the next heading, or
    to the end of the file.
    """
    lines = content.split("\n")
    headings = _heading_rows(lines)
    file_name = _basename(path) or "document"

    if not headings:
        return [_section_chunk(path, lines, 0, len(lines) - 1, file_name)]

    chunks: list[Chunk] = []
    first_row = headings[0][0]
    if first_row > 0 and any(line.strip() for line in lines[:first_row]):
        chunks.append(_section_chunk(path, lines, 0, first_row - 1, file_name))

    for idx, (row, title) in enumerate(headings):
        end_row = headings[idx + 1][0] - 1 if idx + 1 < len(headings) else len(lines) - 1
        chunks.append(_section_chunk(path, lines, row, end_row, title))
    return chunks


# ---------------------------------------------------------------------------
# Manifests
# ---------------------------------------------------------------------------


def _parse_structured(path: str, content: str) -> dict[str, Any] | None:
    name = _basename(path)
    try:
        if name.endswith(".json"):
            data = json.loads(content)
        elif name.endswith(".toml"):
            data = tomllib.loads(content)
        else:
            return None
    except (json.JSONDecodeError, tomllib.TOMLDecodeError, ValueError):
        logger.debug("manifest is not structured", path=path)
        return None
    return data if isinstance(data, dict) else None


def _requirement_names(specs: object) -> list[str]:
    """Package names from PEP 508 requirement strings."""
    names: list[str] = []
    if isinstance(specs, list):
        for spec in specs:
            match = _REQUIREMENT_NAME.match(str(spec))
            if match:
                names.append(match.group(1))
    return names


def _manifest_sections(data: dict[str, Any]) -> list[dict[str, Any]]:
    """Tables that may carry name/description/keywords (package.json is flat)."""
    sections = [data]
    for key in ("project", "package"):
        table = data.get(key)
        if isinstance(table, dict):
            sections.append(table)
    poetry = data.get("tool", {}).get("poetry") if isinstance(data.get("tool"), dict) else None
    if isinstance(poetry, dict):
        sections.append(poetry)
    return sections


def _structured_fields(data: dict[str, Any]) -> tuple[list[str], list[str]]:
    """Return (keywords, dependencies) pulled from a parsed manifest."""
    keywords: list[str] = []
    dependencies: list[str] = []
    for section in _manifest_sections(data):
        if isinstance(section.get("name"), str):
            keywords.append(section["name"])
        if isinstance(section.get("description"), str):
            keywords.extend(_long_words(section["description"]))
        if isinstance(section.get("keywords"), list):
            keywords.extend(str(k).lower() for k in section["keywords"])
        deps = section.get("dependencies")
        if isinstance(deps, dict):
            dependencies.extend(str(k) for k in deps if k != "python")
        else:
            dependencies.extend(_requirement_names(deps))
    keywords.extend(dependencies)
    return keywords, list(dict.fromkeys(dependencies))


def _frequent_words(content: str, limit: int = _FALLBACK_KEYWORD_LIMIT) -> list[str]:
    """Most frequent long words; ties keep first-seen order."""
    return [word for word, _ in Counter(_long_words(content)).most_common(limit)]


def chunk_manifest(path: str, content: str) -> Chunk:
    """A manifest becomes one metadata chunk spanning the whole file."""
    name = _basename(path) or "metadata"
    data = _parse_structured(path, content)
    if data is not None:
        keywords, dependencies = _structured_fields(data)
    else:
        keywords, dependencies = _frequent_words(content), []

    if name.endswith(".json"):
        language = "json"
    elif name.endswith(".toml"):
        language = "toml"
    else:
        language = "text"

    return Chunk(
        id=make_chunk_id(path, 1),
        file_path=path,
        start_line=1,
        end_line=len(content.split("\n")),
        kind=ChunkKind.METADATA,
        name=name,
        language=language,
        code=content,
        keywords=tuple(dict.fromkeys(keywords)),
        dependencies=tuple(dependencies),
    )
