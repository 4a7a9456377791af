"""
Prediction Data Models

Schemas for data flowing between the generator, the adjudicator, the
sequencer and the HTTP layer. All models use frozen dataclasses with
__post_init__ validation.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any

MAX_DURATION_S = 6 * 30 * 24 * 3600
MIN_TAGS = 3
MAX_TAGS = 5

# Market policy attached to every prediction this server creates.
MIN_VOTES = 1
MAX_VOTES = 1000
PREDICTION_TYPE = 0
OPTIONS_COUNT = 2


# ---------------------------------------------------------------------------
# Candidate prediction — one parsed item of model output
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CandidatePrediction:
    """
    A generated prediction question that has not been submitted yet.

    Validation rejects anything that would corrupt the on-chain record, so a
    malformed model item fails here instead of downstream.
    """

    description: str
    duration: int
    tags: tuple[str, ...]

    def __post_init__(self) -> None:
        if not isinstance(self.description, str) or not self.description.strip():
            raise ValueError("description must be non-empty text")
        if isinstance(self.duration, bool) or not isinstance(self.duration, int):
            raise ValueError(f"duration must be an integer, got {self.duration!r}")
        if not (1 <= self.duration <= MAX_DURATION_S):
            raise ValueError(
                f"duration must be in [1, {MAX_DURATION_S}] seconds, got {self.duration}"
            )
        if not (MIN_TAGS <= len(self.tags) <= MAX_TAGS):
            raise ValueError(
                f"tags must contain {MIN_TAGS}-{MAX_TAGS} entries, got {len(self.tags)}"
            )
        for tag in self.tags:
            if not isinstance(tag, str) or not tag.strip():
                raise ValueError(f"tags must be non-empty strings, got {tag!r}")

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> CandidatePrediction:
        """
        Build a candidate from one object of model output.

        Integral floats (86400.0) are accepted for duration; any other key in
        the object, including policy-looking ones, is ignored.
        """
        if not isinstance(d, dict):
            raise ValueError(f"prediction must be a JSON object, got {type(d).__name__}")
        for key in ("description", "duration", "tags"):
            if key not in d:
                raise ValueError(f"prediction is missing '{key}'")

        duration = d["duration"]
        if isinstance(duration, float) and duration.is_integer():
            duration = int(duration)

        tags = d["tags"]
        if not isinstance(tags, list):
            raise ValueError(f"tags must be a list, got {type(tags).__name__}")

        return cls(
            description=d["description"].strip() if isinstance(d["description"], str) else d["description"],
            duration=duration,
            tags=tuple(t.strip() if isinstance(t, str) else t for t in tags),
        )

    def normalize(self) -> Prediction:
        """Attach the fixed market policy fields."""
        return Prediction(
            description=self.description,
            duration=self.duration,
            tags=self.tags,
        )


# ---------------------------------------------------------------------------
# Normalized prediction — candidate plus fixed market policy
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Prediction:
    """
    A prediction ready for createPrediction.

    The four policy fields are constants; they are never read from model
    output and the constructor rejects any other value.
    """

    description: str
    duration: int
    tags: tuple[str, ...]
    min_votes: int = MIN_VOTES
    max_votes: int = MAX_VOTES
    prediction_type: int = PREDICTION_TYPE
    options_count: int = OPTIONS_COUNT

    def __post_init__(self) -> None:
        policy = (self.min_votes, self.max_votes, self.prediction_type, self.options_count)
        if policy != (MIN_VOTES, MAX_VOTES, PREDICTION_TYPE, OPTIONS_COUNT):
            raise ValueError(f"market policy fields are fixed, got {policy}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "description": self.description,
            "duration": self.duration,
            "tags": list(self.tags),
            "minVotes": self.min_votes,
            "maxVotes": self.max_votes,
            "predictionType": self.prediction_type,
            "optionsCount": self.options_count,
        }


# ---------------------------------------------------------------------------
# Outcome — the adjudicated verdict
# ---------------------------------------------------------------------------

class Outcome(IntEnum):
    NO = 0
    YES = 1


# ---------------------------------------------------------------------------
# On-chain prediction — read-only view of getPredictionDetails
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ChainPrediction:
    """
    Typed access to the contract's prediction tuple.

    Only the description is interpreted; the raw tuple is kept as-is because
    the contract owns its exact shape.
    """

    prediction_id: int
    description: str
    raw: tuple[Any, ...]

    @classmethod
    def from_tuple(cls, prediction_id: int, raw: Any) -> ChainPrediction:
        values = tuple(raw)
        if not values or not isinstance(values[0], str):
            raise ValueError(
                f"prediction {prediction_id} has no description in contract response"
            )
        return cls(prediction_id=prediction_id, description=values[0], raw=values)
