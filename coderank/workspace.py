"""Load indexable files from a local checkout."""

from __future__ import annotations

import os

import structlog

from coderank._tree_sitter_common import MAX_FILE_SIZE, MAX_FILES, SKIP_DIRS
from coderank.models import IndexFile
from coderank.noncode import should_index_non_code
from coderank.parsers import ParserRegistry

logger = structlog.get_logger()


def load_workspace(
    workspace_path: str,
    max_file_size: int = MAX_FILE_SIZE,
    max_files: int = MAX_FILES,
    registry: ParserRegistry | None = None,
) -> list[IndexFile]:
    """Collect source, markdown and manifest files under *workspace_path*.

    Directories in ``SKIP_DIRS`` are not descended into and files larger than
    *max_file_size* bytes are skipped. Directories and files are visited in
    sorted order, so when *max_files* truncates the walk the same files are
    kept every time. Paths are relative and ``/``-separated.
    """
    registry = registry or ParserRegistry()
    root = os.path.abspath(workspace_path)
    if not os.path.isdir(root):
        raise NotADirectoryError(f"workspace not found: {workspace_path}")

    files: list[IndexFile] = []
    skipped_large = 0

    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in SKIP_DIRS)

        for fname in sorted(filenames):
            if len(files) >= max_files:
                logger.warning("workspace file limit reached", workspace=root, max_files=max_files)
                return sorted(files, key=lambda f: f.path)

            abs_path = os.path.join(dirpath, fname)
            rel_path = os.path.relpath(abs_path, root).replace(os.sep, "/")
            if not (registry.supports(rel_path) or should_index_non_code(rel_path)):
                continue

            try:
                if os.path.getsize(abs_path) > max_file_size:
                    skipped_large += 1
                    continue
                with open(abs_path, encoding="utf-8", errors="replace") as fh:
                    content = fh.read()
            except OSError:
                logger.warning("cannot read file", path=rel_path, exc_info=True)
                continue

            files.append(IndexFile(path=rel_path, content=content))

    logger.info("workspace loaded", workspace=root, files=len(files), skipped_large=skipped_large)
    return sorted(files, key=lambda f: f.path)
