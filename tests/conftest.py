# Shared fixtures and in-memory fakes for the civicrag test suite.
# Nothing here talks to a network service.

import os
import re
import threading
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Optional

import pytest
import tiktoken

project_root = Path(__file__).parent.parent

# Set test environment before any civicrag module loads config
os.environ["ENV"] = "development"
os.environ["CONFIG_PATH"] = str(project_root / "config" / "development.yaml")
os.environ.setdefault("OPENAI_API_KEY", "test-openai-key")

from civicrag.providers.tokenizer_service import (  # noqa: E402
    TiktokenBackend,
    TokenizerBackend,
    TokenizerService,
)
from civicrag.query.stores import AUXILIARY, SearchRow  # noqa: E402
from civicrag.shared.config import Config  # noqa: E402

_WORD = re.compile(r"\S+")


class WordTokenizerBackend(TokenizerBackend):
    """One token per whitespace-separated word. Deterministic and offline."""

    name = "word"

    def __init__(self):
        self._ids: Dict[str, int] = {}
        self._words: List[str] = []
        self._lock = threading.Lock()

    def _id(self, word: str) -> int:
        with self._lock:
            if word not in self._ids:
                self._ids[word] = len(self._words)
                self._words.append(word)
            return self._ids[word]

    def count_tokens(self, text: str) -> int:
        return len(_WORD.findall(text or ""))

    def encode(self, text: str) -> List[int]:
        return [self._id(w) for w in _WORD.findall(text or "")]

    def decode(self, token_ids: List[int]) -> str:
        return " ".join(self._words[i] for i in token_ids)


# cl100k_base pre-tokenizer
CL100K_PATTERN = (
    r"""(?i:'s|'t|'re|'ve|'m|'ll|'d)|[^\r\n\p{L}\p{N}]?\p{L}+|\p{N}{1,3}"""
    r"""| ?[^\s\p{L}\p{N}]+[\r\n]*|\s*[\r\n]+|\s+(?!\S)|\s+"""
)


class LocalBpeBackend(TiktokenBackend):
    """
    A real tiktoken BPE encoding built offline: cl100k's pre-tokenizer over
    every single byte plus each of ``words`` with and without a leading space.
    Like cl100k it has ``".\\n\\n"`` as one token, so a sentence end followed
    by a paragraph break encodes differently from a bare ``"."``.
    """

    name = "tiktoken-local"

    def __init__(self, words):
        ranks: Dict[bytes, int] = {bytes([b]): b for b in range(256)}
        pieces = [".", ".\n\n", "\n\n", " \n\n"]
        for word in words:
            pieces.extend([word, " " + word])
        for piece in pieces:
            ranks.setdefault(piece.encode("utf-8"), len(ranks))
        self.encoding_name = "cl100k-local"
        self._encoding = tiktoken.Encoding(
            name="cl100k-local",
            pat_str=CL100K_PATTERN,
            mergeable_ranks=ranks,
            special_tokens={},
        )


class FakeEmbedder:
    """
    Embeds a query as ``[n]`` where n is the position of the text in
    ``queries``, so fake stores can tell which query form they were sent.
    """

    def __init__(self, dims: int = 3):
        self._dims = dims
        self.queries: List[str] = []
        self.document_batches: List[List[str]] = []
        self._lock = threading.Lock()

    @property
    def dims(self) -> int:
        return self._dims

    @property
    def model_id(self) -> str:
        return "fake-embedder"

    @property
    def provider_name(self) -> str:
        return "fake"

    def embed_query(self, text: str) -> List[float]:
        with self._lock:
            self.queries.append(text)
            return [float(len(self.queries) - 1)]

    def text_for(self, vector) -> str:
        return self.queries[int(vector[0])]

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        self.document_batches.append(list(texts))
        return [[float(i)] * self._dims for i in range(len(texts))]


class FakeVectorStore:
    """
    Rows per namespace; ``by_query`` overrides the primary rows for one query
    text and ``fail_queries`` makes a primary search for that text raise.
    """

    def __init__(
        self,
        embedder: FakeEmbedder,
        primary: Optional[List[SearchRow]] = None,
        auxiliary: Optional[List[SearchRow]] = None,
        by_query: Optional[Dict[str, List[SearchRow]]] = None,
        fail_queries=(),
        fail_all: bool = False,
        fail_auxiliary: bool = False,
    ):
        self.embedder = embedder
        self.primary = primary or []
        self.auxiliary = auxiliary or []
        self.by_query = by_query or {}
        self.fail_queries = set(fail_queries)
        self.fail_all = fail_all
        self.fail_auxiliary = fail_auxiliary
        self.calls: List[tuple] = []
        self._lock = threading.Lock()

    def vector_search(self, query_vector, tenant_id, similarity_threshold, max_results, namespace="primary"):
        text = self.embedder.text_for(query_vector)
        with self._lock:
            self.calls.append((namespace, text, tenant_id, similarity_threshold, max_results))
        if namespace == AUXILIARY:
            if self.fail_auxiliary:
                raise RuntimeError("auxiliary index unavailable")
            rows = self.auxiliary
        else:
            if self.fail_all or text in self.fail_queries:
                raise RuntimeError(f"primary index unavailable for {text!r}")
            rows = self.by_query.get(text, self.primary)
        hits = [replace(r, metadata=dict(r.metadata)) for r in rows]
        return [r for r in hits if (r.similarity or 0.0) >= similarity_threshold][:max_results]


class FakeFullTextIndex:
    def __init__(self, rows: Optional[List[SearchRow]] = None, error: Optional[Exception] = None):
        self.rows = rows or []
        self.error = error
        self.calls: List[tuple] = []

    def text_search(self, query_text, tenant_id, max_results):
        self.calls.append((query_text, tenant_id, max_results))
        if self.error is not None:
            raise self.error
        return [replace(r, metadata=dict(r.metadata)) for r in self.rows][:max_results]


class FakeRewriter:
    def __init__(self, result: Optional[str] = None):
        self.result = result
        self.calls: List[tuple] = []

    def rewrite(self, query, tenant_id):
        self.calls.append((query, tenant_id))
        return self.result


class FakeRerankProvider:
    """Scores from a dict keyed by candidate id; missing ids score 0."""

    def __init__(self, scores: Optional[Dict[str, float]] = None, error: Optional[Exception] = None):
        self.scores = scores or {}
        self.error = error
        self.calls = 0

    @property
    def model_id(self) -> str:
        return "fake-rerank"

    @property
    def provider_name(self) -> str:
        return "fake"

    def rerank(self, query, candidates, top_k=10):
        self.calls += 1
        if self.error is not None:
            raise self.error
        results = [
            {**c, "rerank_score": self.scores.get(c["id"], 0.0), "original_rank": i + 1}
            for i, c in enumerate(candidates)
        ]
        results.sort(key=lambda c: c["rerank_score"], reverse=True)
        return results[:top_k]


class BlockingRerankProvider(FakeRerankProvider):
    """Blocks until released; used to exercise the rerank timeout."""

    def __init__(self):
        super().__init__()
        self.release = threading.Event()

    def rerank(self, query, candidates, top_k=10):
        self.release.wait(timeout=5)
        return super().rerank(query, candidates, top_k)


class RecordingChunkStore:
    def __init__(self):
        self.replaced: List[tuple] = []
        self.deleted: List[tuple] = []

    def replace_document_chunks(self, document_id, tenant_id, chunks, vectors):
        self.replaced.append((document_id, tenant_id, list(chunks), list(vectors)))

    def delete_document(self, document_id, tenant_id):
        self.deleted.append((document_id, tenant_id))


def make_row(row_id: str, similarity: Optional[float], text: str = "", **metadata) -> SearchRow:
    return SearchRow(id=row_id, text=text or f"text of {row_id}", metadata=metadata, similarity=similarity)


@pytest.fixture
def word_tokenizer() -> TokenizerService:
    return TokenizerService(WordTokenizerBackend())


@pytest.fixture
def config() -> Config:
    """Built-in defaults, independent of the YAML file."""
    return Config()


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()
