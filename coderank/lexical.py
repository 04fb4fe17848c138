"""BM25 lexical indexes over chunk code and chunk metadata."""

from __future__ import annotations

import math
import re
from collections import Counter
from typing import TYPE_CHECKING

import bm25s
import numpy as np
import structlog
from bm25s.tokenization import Tokenized

from coderank.chunk import RankedResult
from coderank.constants import BM25_B, BM25_K1, HYBRID_TOP_K

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from coderank.chunk import Chunk

logger = structlog.get_logger()

_NON_ALNUM = re.compile(r"[\W_]+")


class EmptyCorpusError(RuntimeError):
    """Raised when searching an index that holds no documents."""


def tokenize(text: str) -> list[str]:
    """Lower-case *text* and split it on runs of non-alphanumeric characters."""
    return [token for token in _NON_ALNUM.split(text.lower()) if token]


def metadata_text(chunk: Chunk) -> str:
    """Searchable description of a chunk: where it is and what it is called."""
    parts = [chunk.file_path, str(chunk.kind), chunk.name, chunk.language]
    if chunk.doc_comment:
        parts.append(chunk.doc_comment)
    if chunk.parent_class:
        parts.append(chunk.parent_class)
    parts.extend(chunk.keywords)
    return " ".join(parts)


class LexicalIndex:
    """Okapi BM25 over one corpus, scored with the Lucene IDF variant.

    bm25s computes ``idf * tf / (tf + k1 * (1 - b + b * dl / avgdl))``; the
    ``(k1 + 1)`` numerator factor is applied on top. bm25s stores scores as
    float32, so results agree with the classic formulation to about 1e-7
    relative error. Document order is the chunk order passed to
    :meth:`build` and ties keep that order.
    """

    def __init__(self, name: str, document_text: Callable[[Chunk], str]) -> None:
        self.name = name
        self._document_text = document_text
        self._chunks: list[Chunk] = []
        self._vocab: dict[str, int] = {}
        self._doc_freq: Counter[str] = Counter()
        self._avg_doc_length = 0.0
        self._retriever: bm25s.BM25 | None = None
        self._built = False

    def build(self, chunks: Sequence[Chunk]) -> None:
        self._chunks = list(chunks)
        documents = [tokenize(self._document_text(chunk)) for chunk in self._chunks]

        vocab: dict[str, int] = {}
        ids: list[list[int]] = []
        doc_freq: Counter[str] = Counter()
        for tokens in documents:
            ids.append([vocab.setdefault(token, len(vocab)) for token in tokens])
            doc_freq.update(set(tokens))

        self._vocab = vocab
        self._doc_freq = doc_freq
        total_tokens = sum(len(tokens) for tokens in documents)
        self._avg_doc_length = total_tokens / len(documents) if documents else 0.0

        self._retriever = None
        if vocab:
            retriever = bm25s.BM25(method="lucene", k1=BM25_K1, b=BM25_B)
            # bm25s may add an empty-token entry to the vocab it is given
            retriever.index(Tokenized(ids=ids, vocab=dict(vocab)), show_progress=False)
            self._retriever = retriever
        self._built = True

        logger.info(
            "lexical index built",
            index=self.name,
            documents=len(documents),
            avg_doc_length=round(self._avg_doc_length, 1),
            unique_terms=len(vocab),
        )

    def search(self, query: str, top_k: int = HYBRID_TOP_K) -> list[RankedResult]:
        """Chunks with a positive BM25 score for *query*, best first."""
        if not self._built or not self._chunks:
            raise EmptyCorpusError(f"lexical index {self.name!r} has no documents")
        if top_k <= 0 or self._retriever is None:
            return []

        # terms absent from the corpus contribute nothing
        query_ids = [self._vocab[token] for token in tokenize(query) if token in self._vocab]
        if not query_ids:
            return []

        scores = np.asarray(self._retriever.get_scores(query_ids), dtype=np.float64) * (BM25_K1 + 1)
        order = np.argsort(-scores, kind="stable")

        results: list[RankedResult] = []
        for idx in order:
            score = float(scores[idx])
            if score <= 0.0 or len(results) >= top_k:
                break
            results.append(RankedResult(chunk=self._chunks[int(idx)], score=score))
        return results

    def idf(self, term: str) -> float:
        """Inverse document frequency of *term*; 0.0 for unseen terms."""
        df = self._doc_freq.get(term, 0)
        if df == 0:
            return 0.0
        n = len(self._chunks)
        return math.log((n - df + 0.5) / (df + 0.5) + 1)

    @property
    def avg_doc_length(self) -> float:
        return self._avg_doc_length

    @property
    def document_count(self) -> int:
        return len(self._chunks)

    @property
    def vocabulary_size(self) -> int:
        return len(self._vocab)

    def stats(self) -> dict[str, object]:
        return {
            "name": self.name,
            "documents": len(self._chunks),
            "avg_doc_length": self._avg_doc_length,
            "unique_terms": len(self._vocab),
        }


def create_code_index(chunks: Sequence[Chunk]) -> LexicalIndex:
    index = LexicalIndex("bm25-code", lambda chunk: chunk.code)
    index.build(chunks)
    return index


def create_metadata_index(chunks: Sequence[Chunk]) -> LexicalIndex:
    index = LexicalIndex("bm25-metadata", metadata_text)
    index.build(chunks)
    return index
