"""Tests for loading indexable files from a checkout."""

from __future__ import annotations

from pathlib import Path

import pytest

from coderank.parsers import ParserRegistry
from coderank.workspace import load_workspace


def _write(root: Path, rel: str, content: str = "x") -> None:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def test_collects_source_docs_and_manifests(tmp_path: Path) -> None:
    _write(tmp_path, "src/app.ts", "export function app() {}\n")
    _write(tmp_path, "src/util.py", "def util():\n    pass\n")
    _write(tmp_path, "README.md", "# Project\n")
    _write(tmp_path, "package.json", "{}")
    _write(tmp_path, "notes.txt", "not indexed")
    _write(tmp_path, "src/main.c", "int main() {}")
    _write(tmp_path, "node_modules/dep/index.js", "module.exports = 1;")
    _write(tmp_path, ".git/config", "[core]")

    files = load_workspace(str(tmp_path))

    assert [f.path for f in files] == ["README.md", "package.json", "src/app.ts", "src/util.py"]
    assert files[2].content == "export function app() {}\n"


def test_skips_large_files(tmp_path: Path) -> None:
    _write(tmp_path, "small.ts", "const a = 1;")
    _write(tmp_path, "big.ts", "x" * 500)
    assert [f.path for f in load_workspace(str(tmp_path), max_file_size=100)] == ["small.ts"]


def test_file_limit_is_deterministic(tmp_path: Path) -> None:
    for name in ("d.ts", "a.ts", "c.ts", "b.ts"):
        _write(tmp_path, name, "const x = 1;")
    first = [f.path for f in load_workspace(str(tmp_path), max_files=2)]
    second = [f.path for f in load_workspace(str(tmp_path), max_files=2)]
    assert first == second == ["a.ts", "b.ts"]


def test_invalid_utf8_is_replaced(tmp_path: Path) -> None:
    (tmp_path / "bad.py").write_bytes(b"name = '\xff'\n")
    (file,) = load_workspace(str(tmp_path))
    assert "�" in file.content


def test_registry_restricts_languages(tmp_path: Path) -> None:
    _write(tmp_path, "a.py", "x = 1")
    _write(tmp_path, "b.go", "package b")
    files = load_workspace(str(tmp_path), registry=ParserRegistry(languages=["go"]))
    assert [f.path for f in files] == ["b.go"]


def test_missing_directory(tmp_path: Path) -> None:
    with pytest.raises(NotADirectoryError):
        load_workspace(str(tmp_path / "missing"))
