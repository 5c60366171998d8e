"""
Base embedding provider protocol.

The provider returns plain lists of floats (JSON-safe, no numpy arrays).
Batch embedding must preserve input order: vector ``i`` belongs to text ``i``.
"""

from typing import List, Protocol, runtime_checkable


@runtime_checkable
class EmbeddingProvider(Protocol):
    @property
    def dims(self) -> int:
        """Dimensionality of the vectors this provider returns."""
        ...

    @property
    def model_id(self) -> str:
        """Model identifier, e.g. ``text-embedding-3-large``."""
        ...

    @property
    def provider_name(self) -> str:
        ...

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        """
        Embed chunk texts for storage.

        Args:
            texts: Texts to embed

        Returns:
            One vector per input text, in input order

        Raises:
            EmbeddingError: If the embedding service fails
        """
        ...

    def embed_query(self, text: str) -> List[float]:
        """
        Embed one search query.

        Raises:
            EmbeddingError: If the embedding service fails
        """
        ...
