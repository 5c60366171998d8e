"""
Provider factory.

Builds embedding, rerank and rewrite providers from the loaded config and
environment settings. Missing credentials for an enabled provider raise
ConfigurationError here, at startup, rather than on the first query.
"""

from typing import Optional

from civicrag.providers.embeddings import EmbeddingProvider, OpenAIEmbeddingProvider
from civicrag.providers.embeddings.openai import QueryEmbeddingCache
from civicrag.providers.llm import OpenAIQueryRewriter, QueryRewriter
from civicrag.providers.rerank import CohereRerankProvider, RerankProvider
from civicrag.shared.config import Config, Settings, get_config, get_settings
from civicrag.shared.errors import ConfigurationError
from civicrag.shared.observability import get_logger
from civicrag.shared.resilience import CircuitBreaker

logger = get_logger(__name__)


class ProviderFactory:
    @classmethod
    def create_embedding_provider(
        cls, config: Optional[Config] = None, settings: Optional[Settings] = None
    ) -> EmbeddingProvider:
        config = config or get_config()
        settings = settings or get_settings()
        emb = config.embedding
        provider = emb.provider.strip().lower()

        logger.info("creating_embedding_provider", provider=provider, model=emb.model)

        if provider == "openai":
            if not settings.openai_api_key:
                raise ConfigurationError(
                    "OPENAI_API_KEY required for openai embeddings",
                    setting="OPENAI_API_KEY",
                )
            return OpenAIEmbeddingProvider(
                api_key=settings.openai_api_key,
                model=emb.model,
                dims=emb.dims,
                base_url=settings.openai_base_url,
                batch_size=emb.batch_size,
                timeout=emb.timeout_seconds,
                cache=QueryEmbeddingCache(
                    max_size=emb.query_cache_size,
                    ttl_seconds=emb.query_cache_ttl_seconds,
                ),
            )
        raise ConfigurationError(
            f"Unknown embedding provider: {emb.provider}", setting="embedding.provider"
        )

    @classmethod
    def create_rerank_provider(
        cls, config: Optional[Config] = None, settings: Optional[Settings] = None
    ) -> Optional[RerankProvider]:
        """Return the cross-encoder, or None when reranking is disabled."""
        config = config or get_config()
        settings = settings or get_settings()
        rr = config.reranker
        provider = rr.provider.strip().lower()

        if not rr.enabled or provider in {"none", "disabled", "noop"}:
            logger.info("rerank_provider_disabled")
            return None

        logger.info("creating_rerank_provider", provider=provider, model=rr.model)

        if provider == "cohere":
            if not settings.cohere_api_key:
                raise ConfigurationError(
                    "COHERE_API_KEY required for cohere reranker",
                    setting="COHERE_API_KEY",
                )
            return CohereRerankProvider(
                api_key=settings.cohere_api_key,
                model=rr.model,
                base_url=settings.cohere_base_url,
                timeout=rr.timeout_seconds,
                circuit_breaker=CircuitBreaker(
                    name=f"rerank:{rr.model}",
                    failure_threshold=rr.failure_threshold,
                    recovery_timeout=rr.recovery_timeout_seconds,
                ),
            )
        raise ConfigurationError(
            f"Unknown rerank provider: {rr.provider}", setting="reranker.provider"
        )

    @classmethod
    def create_query_rewriter(
        cls, config: Optional[Config] = None, settings: Optional[Settings] = None
    ) -> Optional[QueryRewriter]:
        config = config or get_config()
        settings = settings or get_settings()
        rw = config.rewriter
        if not rw.enabled:
            return None
        if rw.provider.strip().lower() != "openai":
            raise ConfigurationError(
                f"Unknown rewriter provider: {rw.provider}", setting="rewriter.provider"
            )
        if not settings.openai_api_key:
            raise ConfigurationError(
                "OPENAI_API_KEY required for query rewrite", setting="OPENAI_API_KEY"
            )
        logger.info("creating_query_rewriter", model=rw.model)
        return OpenAIQueryRewriter(
            api_key=settings.openai_api_key,
            model=rw.model,
            base_url=settings.openai_base_url,
            timeout=rw.timeout_seconds,
            max_tokens=rw.max_tokens,
            temperature=rw.temperature,
        )
