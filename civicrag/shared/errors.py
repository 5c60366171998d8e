"""Exception hierarchy shared by ingestion and retrieval."""

from typing import Any, Dict, Optional


class CivicRagError(Exception):
    """Base exception for all civicrag errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for structured output."""
        return {
            "error": {
                "message": self.message,
                "code": self.code,
                "details": self.details,
            }
        }


class ConfigurationError(CivicRagError):
    """Missing credentials or invalid configuration. Fatal at startup."""

    def __init__(
        self,
        message: str = "Invalid configuration",
        setting: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        if setting:
            error_details["setting"] = setting
        super().__init__(message=message, code="CONFIGURATION_ERROR", details=error_details)


class ChunkingError(CivicRagError):
    """Raised for invalid chunking policies or unpersistable chunker output."""

    def __init__(
        self,
        message: str = "Text chunking failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code="CHUNKING_ERROR", details=details)


class EmbeddingError(CivicRagError):
    """Raised when the embedding service fails."""

    def __init__(
        self,
        message: str = "Embedding generation failed",
        model: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        if model:
            error_details["model"] = model
        super().__init__(message=message, code="EMBEDDING_ERROR", details=error_details)


class SearchBackendError(CivicRagError):
    """A single search call against a store failed."""

    def __init__(
        self,
        message: str = "Search backend call failed",
        signal: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        if signal:
            error_details["signal"] = signal
        super().__init__(message=message, code="SEARCH_BACKEND_ERROR", details=error_details)


class RetrievalError(CivicRagError):
    """Every primary-index search failed; nothing trustworthy to return."""

    def __init__(
        self,
        message: str = "Retrieval failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code="RETRIEVAL_ERROR", details=details)


class RerankError(CivicRagError):
    """Cross-encoder scoring failed, timed out or was short-circuited."""

    def __init__(
        self,
        message: str = "Reranking failed",
        model: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        if model:
            error_details["model"] = model
        super().__init__(message=message, code="RERANK_ERROR", details=error_details)


class RewriteError(CivicRagError):
    """The query rewrite model could not be reached or answered badly."""

    def __init__(
        self,
        message: str = "Query rewrite failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code="REWRITE_ERROR", details=details)
