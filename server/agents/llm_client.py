"""
Groq Completion Client

Thin async wrapper around the Groq Python SDK. Sends one chat completion,
enforces a hard timeout and returns the text. No retries: a failed call is
surfaced once and the caller decides what it means for its stage.
"""
from __future__ import annotations

import logging
import time
from typing import Any

from groq import APIConnectionError, APIStatusError, APITimeoutError, AsyncGroq, GroqError

from core.errors import CompletionError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "llama-3.3-70b-versatile"
TIMEOUT_S = 60.0
MAX_TOKENS = 1024


class CompletionClient:
    """
    Async Groq chat-completion client.

    Initialise once per process and reuse across calls. The SDK client can be
    injected so tests substitute an AsyncMock.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_MODEL,
        timeout_s: float = TIMEOUT_S,
        client: Any | None = None,
    ) -> None:
        self._client = client if client is not None else AsyncGroq(api_key=api_key)
        self._model = model
        self._timeout_s = timeout_s

    @property
    def model(self) -> str:
        return self._model

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float,
        max_tokens: int = MAX_TOKENS,
    ) -> str:
        """
        Send one completion request and return the message text.

        Raises CompletionError on any API failure or empty response.
        """
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]

        t0 = time.monotonic()
        try:
            completion = await self._client.chat.completions.create(
                model=self._model,
                messages=messages,
                temperature=temperature,
                max_completion_tokens=max_tokens,
                stream=False,
                timeout=self._timeout_s,
            )
        except APITimeoutError as e:
            raise CompletionError(
                f"Groq request timed out after {self._timeout_s}s",
                {"model": self._model},
            ) from e
        except APIStatusError as e:
            raise CompletionError(
                f"Groq API error {e.status_code}: {e}",
                {"model": self._model},
            ) from e
        except (APIConnectionError, GroqError) as e:
            raise CompletionError(f"Groq request failed: {e}", {"model": self._model}) from e

        elapsed_ms = (time.monotonic() - t0) * 1000

        try:
            raw = completion.choices[0].message.content
        except (AttributeError, IndexError) as e:
            raise CompletionError("Malformed response from Groq", {"model": self._model}) from e

        if not raw or not raw.strip():
            raise CompletionError("Empty response from Groq", {"model": self._model})

        logger.debug(f"Groq completion: {len(raw)} chars in {elapsed_ms:.0f}ms")
        return raw
