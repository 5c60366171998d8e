"""Cross-encoder rerank providers."""

from civicrag.providers.rerank.base import RerankProvider
from civicrag.providers.rerank.cohere import CohereRerankProvider

__all__ = ["RerankProvider", "CohereRerankProvider"]
