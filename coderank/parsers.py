"""Tree-sitter parser registry and language detection."""

from __future__ import annotations

import posixpath
import threading
from typing import TYPE_CHECKING

from tree_sitter_language_pack import get_parser

from coderank._tree_sitter_common import EXTENSION_MAP, NODE_KIND_MAP

if TYPE_CHECKING:
    from collections.abc import Iterable

    from tree_sitter import Parser, Tree


class UnsupportedLanguageError(ValueError):
    """Raised when a parser is requested for a language without a kind table."""


def detect_language(path: str) -> str | None:
    """Detect the tree-sitter language of *path* from its extension."""
    _, ext = posixpath.splitext(path.replace("\\", "/"))
    if not ext:
        return None
    return EXTENSION_MAP.get(ext[1:].lower())


class ParserRegistry:
    """Hands out tree-sitter parsers for the supported languages.

    Construct one registry at startup and pass it to every chunker. A
    ``tree_sitter.Parser`` is not safe to share between threads, so parsers
    are created lazily and cached per thread; grammars themselves are loaded
    once by ``tree_sitter_language_pack``.
    """

    def __init__(self, languages: Iterable[str] | None = None) -> None:
        selected = frozenset(languages) if languages is not None else frozenset(NODE_KIND_MAP)
        unknown = selected - set(NODE_KIND_MAP)
        if unknown:
            raise UnsupportedLanguageError(f"no node kind table for: {sorted(unknown)}")
        self._languages = selected
        self._local = threading.local()

    @property
    def supported_languages(self) -> frozenset[str]:
        return self._languages

    def supports(self, path: str) -> bool:
        language = detect_language(path)
        return language is not None and language in self._languages

    def get_parser(self, language: str) -> Parser:
        if language not in self._languages:
            raise UnsupportedLanguageError(f"unsupported language: {language}")
        parsers: dict[str, Parser] | None = getattr(self._local, "parsers", None)
        if parsers is None:
            parsers = {}
            self._local.parsers = parsers
        if language not in parsers:
            parsers[language] = get_parser(language)  # type: ignore[arg-type]
        return parsers[language]

    def parse(self, language: str, source: bytes) -> Tree:
        return self.get_parser(language).parse(source)
