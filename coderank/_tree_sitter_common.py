"""Shared tables for tree-sitter based chunking."""

from __future__ import annotations

from coderank.chunk import ChunkKind

# Directories to skip during file collection
SKIP_DIRS: frozenset[str] = frozenset(
    {
        ".git",
        "node_modules",
        "vendor",
        "__pycache__",
        "dist",
        "build",
        ".venv",
        ".tox",
        ".mypy_cache",
        ".ruff_cache",
        ".pytest_cache",
        ".next",
        "target",
    }
)

# Maximum file size in bytes (100KB)
MAX_FILE_SIZE = 100 * 1024

# Maximum number of files to collect
MAX_FILES = 2000

# File extension (lower-case, no dot) to tree-sitter language name mapping
EXTENSION_MAP: dict[str, str] = {
    "js": "javascript",
    "jsx": "javascript",
    "mjs": "javascript",
    "cjs": "javascript",
    "ts": "typescript",
    "mts": "typescript",
    "cts": "typescript",
    "tsx": "tsx",
    "py": "python",
    "pyw": "python",
    "pyi": "python",
    "go": "go",
    "rs": "rust",
}

_JS_KINDS: dict[str, ChunkKind] = {
    "function_declaration": ChunkKind.FUNCTION,
    "generator_function_declaration": ChunkKind.FUNCTION,
    "function_expression": ChunkKind.FUNCTION,
    "arrow_function": ChunkKind.FUNCTION,
    "method_definition": ChunkKind.METHOD,
    "class_declaration": ChunkKind.CLASS,
}

_TS_KINDS: dict[str, ChunkKind] = {
    **_JS_KINDS,
    "method_signature": ChunkKind.METHOD,
    "abstract_class_declaration": ChunkKind.CLASS,
    "interface_declaration": ChunkKind.INTERFACE,
    "type_alias_declaration": ChunkKind.INTERFACE,
    "enum_declaration": ChunkKind.CONSTANT,
}

# (language, node type) -> chunk kind. Node types missing here are skipped.
NODE_KIND_MAP: dict[str, dict[str, ChunkKind]] = {
    "javascript": _JS_KINDS,
    "typescript": _TS_KINDS,
    "tsx": _TS_KINDS,
    "python": {
        "function_definition": ChunkKind.FUNCTION,
        "class_definition": ChunkKind.CLASS,
    },
    "go": {
        "function_declaration": ChunkKind.FUNCTION,
        "method_declaration": ChunkKind.METHOD,
        "type_declaration": ChunkKind.INTERFACE,
    },
    "rust": {
        "function_item": ChunkKind.FUNCTION,
        "impl_item": ChunkKind.METHOD,
        "struct_item": ChunkKind.CLASS,
        "enum_item": ChunkKind.CONSTANT,
        "trait_item": ChunkKind.INTERFACE,
    },
}

# Languages whose upper-case functions returning JSX are React components.
JSX_LANGUAGES: frozenset[str] = frozenset({"javascript", "tsx"})
JSX_NODE_TYPES: frozenset[str] = frozenset({"jsx_element", "jsx_self_closing_element", "jsx_fragment"})

# Call-site node types and the field holding the callee expression.
CALL_NODE_FIELDS: dict[str, str] = {
    "call": "function",  # python
    "call_expression": "function",  # js/ts/go/rust
    "new_expression": "constructor",  # js/ts
}

# Field that names the final segment of a member/attribute callee.
MEMBER_NAME_FIELDS: dict[str, str] = {
    "attribute": "attribute",  # python: obj.attr
    "member_expression": "property",  # js/ts: obj.prop
    "selector_expression": "field",  # go: pkg.Func
    "field_expression": "field",  # rust: self.method
    "scoped_identifier": "name",  # rust: Type::func
}

IDENTIFIER_NODE_TYPES: frozenset[str] = frozenset(
    {"identifier", "type_identifier", "property_identifier", "field_identifier"}
)

# Manifest (package/dependency descriptor) file names.
MANIFEST_FILES: frozenset[str] = frozenset(
    {
        "package.json",
        "Cargo.toml",
        "go.mod",
        "requirements.txt",
        "setup.py",
        "pyproject.toml",
        "composer.json",
        "Gemfile",
    }
)

MARKDOWN_EXTENSIONS: frozenset[str] = frozenset({"md", "markdown"})


def validate_node_kind_map() -> None:
    """Fail fast if a kind table names a language no extension maps to."""
    known = set(EXTENSION_MAP.values())
    unknown = set(NODE_KIND_MAP) - known
    if unknown:
        raise RuntimeError(f"node kind tables for unmapped languages: {sorted(unknown)}")
    missing = known - set(NODE_KIND_MAP)
    if missing:
        raise RuntimeError(f"languages without node kind tables: {sorted(missing)}")


validate_node_kind_map()
