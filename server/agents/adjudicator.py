"""
Outcome Adjudicator

Pure judging step: description + digest -> Outcome via one Groq completion.
The verdict is the last non-empty line of the response and must be exactly
"0" or "1". There is no retry and no default; ambiguity is an error.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from agents.prompts import ADJUDICATION_SYSTEM_PROMPT, build_adjudication_prompt
from agents.schemas import Outcome
from core.errors import AdjudicationError, CompletionError

if TYPE_CHECKING:
    from agents.llm_client import CompletionClient

logger = logging.getLogger(__name__)

TEMPERATURE = 0.1
VERDICT_MAX_TOKENS = 512


def parse_verdict(raw: str) -> Outcome:
    """Return the Outcome on the final non-empty line of *raw*."""
    lines = [line.strip() for line in raw.splitlines() if line.strip()]
    if not lines:
        raise AdjudicationError("Invalid outcome determined by AI: empty response")

    last = lines[-1]
    if last not in ("0", "1"):
        raise AdjudicationError("Invalid outcome determined by AI", verdict_line=last)
    return Outcome(int(last))


class OutcomeAdjudicator:
    def __init__(self, llm: CompletionClient, temperature: float = TEMPERATURE) -> None:
        self._llm = llm
        self._temperature = temperature

    async def adjudicate(self, description: str, digest: str) -> Outcome:
        """Raises AdjudicationError on a failed call or an unparseable verdict."""
        prompt = build_adjudication_prompt(description, digest)
        try:
            raw = await self._llm.complete(
                ADJUDICATION_SYSTEM_PROMPT,
                prompt,
                temperature=self._temperature,
                max_tokens=VERDICT_MAX_TOKENS,
            )
        except CompletionError as e:
            raise AdjudicationError(f"Failed to determine outcome: {e}") from e

        outcome = parse_verdict(raw)
        logger.info(f"Verdict {int(outcome)} for {description[:60]!r}")
        return outcome
