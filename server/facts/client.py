"""
Perplexity Fact Provider

Fetches a short, current, citation-backed digest for a query from the
Perplexity chat-completions API. One request per call, no retries.
"""
from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

import aiohttp

from core.errors import RetrievalError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a highly knowledgeable assistant tasked with providing the most "
    "recent and relevant information on a given topic. Focus on factual, "
    "verifiable data from reliable sources. Include specific numbers, dates, "
    "and key events where applicable."
)


def build_query_prompt(query: str) -> str:
    return (
        f"Provide the most up-to-date and relevant information on the following "
        f"topic: {query}. Include recent developments, statistics, and expert "
        f"opinions if available. Format the information in a clear, concise manner."
    )


@runtime_checkable
class DigestSource(Protocol):
    """Anything that can turn a query into a current fact digest."""

    async def fetch_digest(self, query: str) -> str:
        ...


class FactProviderClient:
    """
    Perplexity-backed DigestSource.

    Pass a shared aiohttp session, or use the client as an async context
    manager and it owns one:

        async with FactProviderClient(api_key=...) as facts:
            digest = await facts.fetch_digest("EU AI Act")
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.perplexity.ai",
        model: str = "sonar",
        recency: str = "week",
        timeout_s: float = 30.0,
        max_tokens: int = 300,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.url = f"{base_url.rstrip('/')}/chat/completions"
        self.model = model
        self.recency = recency
        self.max_tokens = max_tokens
        self._api_key = api_key
        self._timeout = aiohttp.ClientTimeout(total=timeout_s)
        self._session = session
        self._owns_session = False

    async def connect(self) -> None:
        """Open an owned session unless one was injected."""
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True

    async def __aenter__(self) -> FactProviderClient:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
            self._owns_session = False

    def _build_payload(self, query: str) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_query_prompt(query)},
            ],
            "max_tokens": self.max_tokens,
            "temperature": 0.5,
            "top_p": 0.9,
            "return_citations": True,
            "return_images": False,
            "return_related_questions": False,
            "search_recency_filter": self.recency,
        }

    async def fetch_digest(self, query: str) -> str:
        """
        Return the primary answer text for *query*.

        Raises RetrievalError on transport failure, a non-2xx status or a
        payload without answer text.
        """
        if self._session is None:
            raise RuntimeError("Use async context manager: async with FactProviderClient(...):")

        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

        try:
            async with self._session.post(
                self.url,
                json=self._build_payload(query),
                headers=headers,
                timeout=self._timeout,
            ) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    logger.error(f"Perplexity returned {resp.status}: {body[:300]}")
                    raise RetrievalError(
                        f"Failed to fetch data from Perplexity: {body[:300] or resp.reason}",
                        query,
                        status=resp.status,
                    )
                try:
                    data = await resp.json()
                except ValueError as e:
                    raise RetrievalError(
                        "Failed to fetch data from Perplexity: invalid JSON body", query
                    ) from e
        except aiohttp.ClientError as e:
            logger.error(f"Error fetching data from Perplexity: {e}")
            raise RetrievalError(f"Failed to fetch data from Perplexity: {e}", query) from e
        except TimeoutError as e:
            raise RetrievalError("Failed to fetch data from Perplexity: request timed out", query) from e

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise RetrievalError(
                "Failed to fetch data from Perplexity: response missing answer text", query
            ) from e
        if not isinstance(content, str) or not content.strip():
            raise RetrievalError("Failed to fetch data from Perplexity: empty answer", query)

        citations = data.get("citations") or []
        logger.info(f"Digest for {query[:60]!r}: {len(content)} chars, {len(citations)} citation(s)")
        return content
