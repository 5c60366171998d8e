"""Embedding providers."""

from civicrag.providers.embeddings.base import EmbeddingProvider
from civicrag.providers.embeddings.openai import (
    OpenAIEmbeddingProvider,
    QueryEmbeddingCache,
)

__all__ = ["EmbeddingProvider", "OpenAIEmbeddingProvider", "QueryEmbeddingCache"]
