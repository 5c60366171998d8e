"""
Tokenizer service for exact token counting and token-window slicing.

Chunk budgets and overlaps are measured in the embedding model's own tokens,
so the tokenizer must match the embedding model:

- Primary: tiktoken ``cl100k_base`` (OpenAI text-embedding-3 family)
- Optional: HuggingFace ``AutoTokenizer`` for self-hosted embedding models
  (install the ``hf`` extra)

Backends are read-only after construction and safe to share across threads.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

import tiktoken

from civicrag.shared.config import TokenizerConfig, get_config
from civicrag.shared.errors import ConfigurationError
from civicrag.shared.observability import get_logger

logger = get_logger(__name__)


class TokenizerBackend(ABC):
    """Abstract base class for tokenizer backends."""

    name: str = "abstract"

    @abstractmethod
    def count_tokens(self, text: str) -> int:
        """Exact token count of ``text``."""

    @abstractmethod
    def encode(self, text: str) -> List[int]:
        """Encode text to token IDs."""

    @abstractmethod
    def decode(self, token_ids: List[int]) -> str:
        """Decode token IDs back to text."""


class TiktokenBackend(TokenizerBackend):
    """tiktoken backend (PRIMARY). Local, deterministic, no network after first load."""

    name = "tiktoken"

    def __init__(self, encoding: str = "cl100k_base"):
        self.encoding_name = encoding
        self._encoding = tiktoken.get_encoding(encoding)
        logger.info("tokenizer_loaded", backend=self.name, encoding=encoding)

    def count_tokens(self, text: str) -> int:
        if not text:
            return 0
        return len(self._encoding.encode(text, disallowed_special=()))

    def encode(self, text: str) -> List[int]:
        return self._encoding.encode(text, disallowed_special=())

    def decode(self, token_ids: List[int]) -> str:
        return self._encoding.decode(token_ids)


class HuggingFaceTokenizerBackend(TokenizerBackend):
    """HuggingFace tokenizer for self-hosted embedding models."""

    name = "huggingface"

    def __init__(self, model_id: str):
        try:
            from transformers import AutoTokenizer
        except ImportError as e:
            raise ConfigurationError(
                "tokenizer.backend 'hf' requires the 'transformers' package "
                "(pip install civicrag[hf])",
                setting="tokenizer.backend",
            ) from e

        self.model_id = model_id
        self.tokenizer = AutoTokenizer.from_pretrained(model_id)
        logger.info("tokenizer_loaded", backend=self.name, model_id=model_id)

    def count_tokens(self, text: str) -> int:
        if not text:
            return 0
        return len(self.tokenizer.encode(text, add_special_tokens=False))

    def encode(self, text: str) -> List[int]:
        return self.tokenizer.encode(text, add_special_tokens=False)

    def decode(self, token_ids: List[int]) -> str:
        return self.tokenizer.decode(token_ids, skip_special_tokens=True)


def create_backend(config: Optional[TokenizerConfig] = None) -> TokenizerBackend:
    """Build the backend named by ``tokenizer.backend``."""
    config = config or get_config().tokenizer
    backend = config.backend.lower()
    if backend == "tiktoken":
        return TiktokenBackend(encoding=config.encoding)
    if backend == "hf":
        if not config.model_id:
            raise ConfigurationError(
                "tokenizer.model_id is required for the hf backend",
                setting="tokenizer.model_id",
            )
        return HuggingFaceTokenizerBackend(model_id=config.model_id)
    raise ConfigurationError(
        f"Invalid tokenizer backend: {backend}. Must be 'tiktoken' or 'hf'.",
        setting="tokenizer.backend",
    )


class TokenizerService:
    """
    Token counting plus the slicing operations the packer needs.

    ``tail_tokens`` and ``join_after_tokens`` seed a chunk with the exact last
    N tokens of its predecessor. ``split_by_tokens`` is the last-resort
    splitter for text with no usable paragraph, line or sentence boundary.
    """

    def __init__(self, backend: Optional[TokenizerBackend] = None):
        self.backend = backend or create_backend()
        self.backend_name = self.backend.name

    def count_tokens(self, text: str) -> int:
        return self.backend.count_tokens(text)

    def tail_tokens(self, text: str, n_tokens: int) -> List[int]:
        if n_tokens <= 0 or not text:
            return []
        return self.backend.encode(text)[-n_tokens:]

    def join_after_tokens(
        self, token_ids: Sequence[int], joiners: Sequence[str], text: str
    ) -> Optional[str]:
        """
        ``decode(token_ids) + joiner + text`` for the first joiner whose result
        re-encodes with exactly ``token_ids`` as its prefix.

        The decoded prefix is used as-is, leading space included. BPE
        vocabularies can merge the last prefix token with the joiner (``.``
        followed by a newline is one cl100k token), so every candidate is
        checked by encoding it. Returns None when no joiner keeps the prefix.
        """
        expected = list(token_ids)
        if not expected:
            return None
        prefix = self.backend.decode(expected)
        for joiner in joiners:
            joined = f"{prefix}{joiner}{text}"
            if self.backend.encode(joined)[: len(expected)] == expected:
                return joined
        return None

    def split_by_tokens(
        self, text: str, max_tokens: int, overlap_tokens: int = 0
    ) -> List[str]:
        """
        Hard split into windows of at most ``max_tokens`` tokens.

        Consecutive windows share ``overlap_tokens`` tokens. No token is
        dropped.
        """
        if max_tokens <= 0:
            raise ValueError("max_tokens must be positive")
        if overlap_tokens >= max_tokens:
            raise ValueError("overlap_tokens must be smaller than max_tokens")

        ids = self.backend.encode(text)
        if len(ids) <= max_tokens:
            return [text]

        step = max_tokens - overlap_tokens
        pieces: List[str] = []
        start = 0
        while start < len(ids):
            window = ids[start : start + max_tokens]
            pieces.append(self.backend.decode(window))
            if start + max_tokens >= len(ids):
                break
            start += step
        return pieces


_default_service: Optional[TokenizerService] = None


def get_tokenizer_service() -> TokenizerService:
    """Process-wide tokenizer built from config on first use."""
    global _default_service
    if _default_service is None:
        _default_service = TokenizerService()
    return _default_service
