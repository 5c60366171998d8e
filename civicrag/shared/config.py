# Configuration loader with environment variable support
# YAML file per environment (config/{ENV}.yaml) plus secrets from the environment

import logging
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError
from .models import CivicBaseModel

logger = logging.getLogger(__name__)


class AppConfig(BaseModel):
    name: str = "civicrag"
    version: str = "0.1.0"
    log_level: str = "INFO"
    environment: str = "development"


class EmbeddingConfig(BaseModel):
    provider: str = "openai"
    model: str = "text-embedding-3-large"
    dims: int = 1536
    batch_size: int = 100
    timeout_seconds: float = 30.0
    query_cache_size: int = 500
    query_cache_ttl_seconds: float = 1800.0

    @field_validator("dims", "batch_size")
    @classmethod
    def _positive(cls, v):
        if v <= 0:
            raise ValueError(f"must be positive, got {v}")
        return v


class TokenizerConfig(BaseModel):
    """Tokenizer configuration with backend selection."""

    backend: str = "tiktoken"  # tiktoken | hf
    encoding: str = "cl100k_base"
    model_id: Optional[str] = None


class ChunkPolicyConfig(BaseModel):
    max_tokens: int
    overlap_tokens: int
    strategy: Optional[str] = None


class ChunkingConfig(BaseModel):
    # Per document type overrides; keys are DocumentType values
    policies: Dict[str, ChunkPolicyConfig] = Field(default_factory=dict)
    strip_boilerplate: bool = True
    # hosts whose self-link breadcrumb trails are stripped
    boilerplate_hosts: List[str] = Field(default_factory=list)
    embedding_token_limit: int = 7500
    safety_overlap_tokens: int = 50
    intro_title: str = "Introduction"
    search_window_chars: int = 2000


class SearchConfig(BaseModel):
    match_threshold: float = 0.7
    match_count: int = 30
    result_count: int = 10
    similarity_floor: float = 0.3
    auxiliary_enabled: bool = True
    auxiliary_multiplier: float = 0.95
    fulltext_enabled: bool = True
    fulltext_weight: float = 0.5
    max_workers: int = 8
    primary_collection: str = "document_chunks"
    auxiliary_collection: str = "content_items"

    @field_validator("match_threshold", "similarity_floor", "auxiliary_multiplier", "fulltext_weight")
    @classmethod
    def _unit_interval(cls, v):
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"must be within [0, 1], got {v}")
        return v


class RankingConfig(BaseModel):
    similarity_weight: float = 0.6
    keyword_weight: float = 0.2
    recency_weight: float = 0.1
    authority_weight: float = 0.1
    department_boost: float = 0.05
    min_term_length: int = 3
    source_boost: Dict[str, float] = Field(default_factory=dict)
    # Blend used when a cross-encoder score is present
    cross_encoder_weight: float = 0.6
    formula_weight: float = 0.3
    source_boost_weight: float = 0.1


class SelectionConfig(BaseModel):
    max_per_document: int = 3
    primary_fraction: float = 0.8
    expand_siblings: bool = True
    sibling_window: int = 1


class RerankerConfig(BaseModel):
    enabled: bool = False
    provider: str = "cohere"
    model: str = "rerank-v3.5"
    timeout_seconds: float = 3.0
    failure_threshold: int = 5
    recovery_timeout_seconds: float = 30.0


class RewriterConfig(BaseModel):
    enabled: bool = False
    provider: str = "openai"
    model: str = "gpt-4o-mini"
    timeout_seconds: float = 5.0
    max_tokens: int = 100
    temperature: float = 0.0


class SynonymEntryConfig(BaseModel):
    triggers: List[str]
    expansions: List[str]


class SynonymsConfig(BaseModel):
    # tenant_id -> entries matched before the universal dictionary
    tenants: Dict[str, List[SynonymEntryConfig]] = Field(default_factory=dict)


class Config(CivicBaseModel):
    """Main configuration model"""

    app: AppConfig = Field(default_factory=AppConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    tokenizer: TokenizerConfig = Field(default_factory=TokenizerConfig)
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    ranking: RankingConfig = Field(default_factory=RankingConfig)
    selection: SelectionConfig = Field(default_factory=SelectionConfig)
    reranker: RerankerConfig = Field(default_factory=RerankerConfig)
    rewriter: RewriterConfig = Field(default_factory=RewriterConfig)
    synonyms: SynonymsConfig = Field(default_factory=SynonymsConfig)


class Settings(BaseSettings):
    """Environment-based settings"""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    env: str = Field(default="development", alias="ENV")
    config_path: Optional[str] = Field(default=None, alias="CONFIG_PATH")

    # OpenAI (embeddings + query rewrite)
    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    openai_base_url: str = Field(
        default="https://api.openai.com/v1", alias="OPENAI_BASE_URL"
    )

    # Cohere (cross-encoder)
    cohere_api_key: Optional[str] = Field(default=None, alias="COHERE_API_KEY")
    cohere_base_url: str = Field(
        default="https://api.cohere.com/v2", alias="COHERE_BASE_URL"
    )

    # Qdrant
    qdrant_url: str = Field(default="http://localhost:6333", alias="QDRANT_URL")
    qdrant_api_key: Optional[str] = Field(default=None, alias="QDRANT_API_KEY")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")


def _resolve_config_path(settings: Settings) -> Path:
    if settings.config_path:
        return Path(settings.config_path)
    return Path(__file__).parent.parent.parent / "config" / f"{settings.env}.yaml"


def load_config() -> tuple[Config, Settings]:
    """
    Load configuration from YAML file and environment variables.

    Returns:
        tuple: (Config, Settings) - YAML config and environment settings

    Raises:
        ConfigurationError: If the file is missing or fails validation
    """
    settings = Settings()
    config_path = _resolve_config_path(settings)

    if not config_path.exists():
        raise ConfigurationError(
            f"Configuration file not found: {config_path}", setting="CONFIG_PATH"
        )

    logger.info(f"Loading configuration from: {config_path}")

    with open(config_path, "r") as f:
        config_dict = yaml.safe_load(f) or {}

    try:
        config = Config(**config_dict)
    except ValueError as e:
        raise ConfigurationError(
            f"Invalid configuration in {config_path}: {e}",
            details={"path": str(config_path)},
        ) from e

    validate_config_structure(config)
    return config, settings


def validate_config_structure(config: Config) -> None:
    """Checks that need no environment; run on every load."""
    logger.info(
        "Embedding configuration loaded: provider=%s model=%s dims=%s tokenizer=%s",
        config.embedding.provider,
        config.embedding.model,
        config.embedding.dims,
        config.tokenizer.backend,
    )

    if config.tokenizer.backend not in {"tiktoken", "hf"}:
        raise ConfigurationError(
            f"tokenizer.backend must be 'tiktoken' or 'hf', got {config.tokenizer.backend}",
            setting="tokenizer.backend",
        )

    for doc_type, policy in config.chunking.policies.items():
        if policy.max_tokens <= 0 or policy.overlap_tokens < 0:
            raise ConfigurationError(
                f"chunking policy for {doc_type} needs positive max_tokens",
                setting=f"chunking.policies.{doc_type}",
            )
        if policy.overlap_tokens >= policy.max_tokens:
            raise ConfigurationError(
                f"chunking policy for {doc_type}: overlap ({policy.overlap_tokens}) "
                f"must be smaller than max_tokens ({policy.max_tokens})",
                setting=f"chunking.policies.{doc_type}",
            )

    if config.search.similarity_floor > config.search.match_threshold:
        logger.warning(
            f"search.similarity_floor ({config.search.similarity_floor}) is above "
            f"search.match_threshold ({config.search.match_threshold}); "
            "the floor becomes the effective cutoff"
        )

    if not 0.0 < config.selection.primary_fraction <= 1.0:
        raise ConfigurationError(
            "selection.primary_fraction must be within (0, 1]",
            setting="selection.primary_fraction",
        )


def validate_config_at_startup(config: Config, settings: Settings) -> None:
    """
    Fail fast on configuration that cannot serve a query.

    Credentials are required only for providers that are switched on.

    Raises:
        ConfigurationError: If critical validation fails
    """
    validate_config_structure(config)

    if config.embedding.provider == "openai" and not settings.openai_api_key:
        raise ConfigurationError(
            "OPENAI_API_KEY required for openai embeddings", setting="OPENAI_API_KEY"
        )
    if config.rewriter.enabled and not settings.openai_api_key:
        raise ConfigurationError(
            "OPENAI_API_KEY required for query rewrite", setting="OPENAI_API_KEY"
        )
    if (
        config.reranker.enabled
        and config.reranker.provider == "cohere"
        and not settings.cohere_api_key
    ):
        raise ConfigurationError(
            "COHERE_API_KEY required for cohere reranker", setting="COHERE_API_KEY"
        )

    logger.info("Configuration validation successful")


# Global config instances (loaded once at startup)
_config: Optional[Config] = None
_settings: Optional[Settings] = None


def get_config() -> Config:
    """Get the global Config instance"""
    global _config, _settings
    if _config is None:
        _config, _settings = load_config()
    return _config


def get_settings() -> Settings:
    """Get the global Settings instance"""
    global _config, _settings
    if _settings is None:
        _config, _settings = load_config()
    return _settings


def reload_config() -> tuple[Config, Settings]:
    """Force reload of config/settings from disk and environment."""
    global _config, _settings
    _config, _settings = load_config()
    return _config, _settings
