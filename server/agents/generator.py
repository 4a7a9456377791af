"""
Prediction Generator

topic -> fact digest -> one Groq completion -> JSON array -> validated,
normalized predictions. Any failure fails the whole topic: the caller gets
either a fully policy-correct list or a GenerationError, never a mix.
"""
from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING, Any

from agents.prompts import (
    GENERATION_SYSTEM_PROMPT,
    PREDICTION_COUNT,
    build_generation_prompt,
)
from agents.schemas import CandidatePrediction, Prediction
from core.errors import CompletionError, GenerationError, RetrievalError

if TYPE_CHECKING:
    from agents.llm_client import CompletionClient
    from facts.client import DigestSource

logger = logging.getLogger(__name__)

TEMPERATURE = 0.7

_FENCE_RE = re.compile(r"^```(?:json)?\s*\n?(.*?)\n?```$", re.DOTALL | re.IGNORECASE)


def parse_predictions(raw: str) -> list[CandidatePrediction]:
    """
    Parse model output into candidates.

    One surrounding ```json fence is stripped; everything else must be a
    bare, non-empty JSON array of prediction objects. Raises ValueError.
    """
    text = raw.strip()
    fenced = _FENCE_RE.match(text)
    if fenced:
        text = fenced.group(1).strip()

    try:
        payload: Any = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"model output is not valid JSON: {e}") from e

    if not isinstance(payload, list):
        raise ValueError(f"expected a JSON array, got {type(payload).__name__}")
    if not payload:
        raise ValueError("model returned an empty prediction array")

    candidates = []
    for index, item in enumerate(payload):
        try:
            candidates.append(CandidatePrediction.from_dict(item))
        except ValueError as e:
            raise ValueError(f"prediction {index}: {e}") from e
    return candidates


class PredictionGenerator:
    """Turns a topic into normalized predictions."""

    def __init__(
        self,
        facts: DigestSource,
        llm: CompletionClient,
        temperature: float = TEMPERATURE,
        count: int = PREDICTION_COUNT,
    ) -> None:
        self._facts = facts
        self._llm = llm
        self._temperature = temperature
        self._count = count

    async def generate(self, topic: str) -> list[Prediction]:
        """
        Generate predictions for *topic*.

        Raises GenerationError if retrieval, the completion call, parsing or
        validation fails.
        """
        try:
            digest = await self._facts.fetch_digest(topic)
        except RetrievalError as e:
            raise GenerationError(f"Failed to generate predictions: {e}", topic) from e

        prompt = build_generation_prompt(topic, digest, count=self._count)
        try:
            raw = await self._llm.complete(
                GENERATION_SYSTEM_PROMPT,
                prompt,
                temperature=self._temperature,
            )
        except CompletionError as e:
            raise GenerationError(f"Failed to generate predictions: {e}", topic) from e

        try:
            candidates = parse_predictions(raw)
        except ValueError as e:
            snippet = raw[:240].replace("\n", " ")
            logger.error(f"Unparseable predictions for {topic!r}: {e} (snippet: {snippet!r})")
            raise GenerationError(f"Failed to generate predictions: {e}", topic) from e

        predictions = [candidate.normalize() for candidate in candidates]
        logger.info(f"Generated {len(predictions)} predictions for {topic!r}")
        return predictions
