"""LLM-backed helpers used at query time."""

from civicrag.providers.llm.query_rewriter import OpenAIQueryRewriter, QueryRewriter

__all__ = ["OpenAIQueryRewriter", "QueryRewriter"]
