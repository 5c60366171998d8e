# Shared utilities package
from .config import Config, Settings, get_config, get_settings, reload_config
from .errors import (
    ChunkingError,
    CivicRagError,
    ConfigurationError,
    EmbeddingError,
    RerankError,
    RetrievalError,
    RewriteError,
    SearchBackendError,
)

__all__ = [
    "Config",
    "Settings",
    "get_config",
    "get_settings",
    "reload_config",
    "CivicRagError",
    "ConfigurationError",
    "ChunkingError",
    "EmbeddingError",
    "SearchBackendError",
    "RetrievalError",
    "RerankError",
    "RewriteError",
]
