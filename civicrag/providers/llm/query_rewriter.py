"""
LLM query rewriting.

Turns a resident's phrasing into a search query that reads like the official
documents. The rewrite only ever adds a search form; the original query is
always searched too, so every failure here degrades to "no rewrite".
"""

from typing import Optional, Protocol, runtime_checkable

import httpx

from civicrag.shared.errors import RewriteError
from civicrag.shared.observability import get_logger

logger = get_logger(__name__)

REWRITE_SYSTEM_PROMPT = """You are a municipal search query optimizer. Your job is to rewrite a resident's question into an ideal search query that would match official government documents.

Rules:
1. Expand informal language into formal municipal terms
2. Add relevant department names when obvious
3. Include both the informal and formal terms (e.g. "dump" -> "transfer station dump trash disposal")
4. Keep the rewritten query under 40 words
5. Do NOT answer the question, only rewrite it as a search query
6. Output ONLY the rewritten query, nothing else

Examples:
- "where's the dump?" -> "transfer station location address hours solid waste disposal recycling"
- "can I build a deck?" -> "building permit deck construction residential zoning requirements application"
- "who do I call about a rat?" -> "board of health pest control rodent complaint animal control phone number contact"
- "what are property taxes?" -> "property tax rate residential tax bill assessment exemption fiscal year"
- "when is the next town meeting?" -> "town meeting date schedule warrant articles annual special town meeting"
- "my kid starts school next year" -> "school registration enrollment kindergarten elementary school zone district requirements\""""


@runtime_checkable
class QueryRewriter(Protocol):
    def rewrite(self, query: str, tenant_id: str) -> Optional[str]:
        """Return a rewritten query, or None when there is nothing useful to add."""
        ...


def tenant_display_name(tenant_id: str) -> str:
    return tenant_id.replace("_", " ").replace("-", " ").title()


class OpenAIQueryRewriter:
    """Chat-completions rewriter. Never raises from ``rewrite``."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 5.0,
        max_tokens: int = 100,
        temperature: float = 0.0,
        client: Optional[httpx.Client] = None,
    ):
        if not api_key:
            raise RewriteError("OPENAI_API_KEY required for query rewrite")
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._client = client or httpx.Client(
            base_url=base_url,
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
        )

    def close(self) -> None:
        self._client.close()

    def rewrite(self, query: str, tenant_id: str) -> Optional[str]:
        try:
            rewritten = self._complete(query, tenant_id)
        except (RewriteError, httpx.HTTPError) as e:
            logger.warning("query_rewrite_failed", error=str(e), model=self.model)
            return None

        rewritten = rewritten.strip().strip('"').strip()
        if not rewritten or rewritten.lower() == query.strip().lower():
            return None
        logger.debug("query_rewritten", original=query, rewritten=rewritten)
        return rewritten

    def _complete(self, query: str, tenant_id: str) -> str:
        payload = {
            "model": self.model,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "messages": [
                {"role": "system", "content": REWRITE_SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": f"Town: {tenant_display_name(tenant_id)}\n"
                    f'Resident\'s question: "{query}"',
                },
            ],
        }
        response = self._client.post("/chat/completions", json=payload)
        if response.status_code != 200:
            raise RewriteError(
                f"Rewrite HTTP {response.status_code}: {response.text[:300]}",
                details={"status_code": response.status_code},
            )
        try:
            return response.json()["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise RewriteError(f"Malformed rewrite response: {e}") from e
