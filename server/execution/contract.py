"""
Prediction Market Contract Binding

ABI loading and call-spec builders for the deployed prediction-market
contract. Write calls are described as CallSpecs and handed to the
TransactionSequencer; nothing here touches the network.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from agents.schemas import Outcome, Prediction

CREATE_PREDICTION = "createPrediction"
FINALIZE_PREDICTION = "finalizePrediction"
GET_PREDICTION_DETAILS = "getPredictionDetails"
GET_USER_STATS = "getUserStats"

WRITE_METHODS = (CREATE_PREDICTION, FINALIZE_PREDICTION)


@dataclass(frozen=True)
class CallSpec:
    """A contract write: method name plus positional arguments."""

    method: str
    args: tuple[Any, ...]

    def __post_init__(self) -> None:
        if self.method not in WRITE_METHODS:
            raise ValueError(f"unknown write method {self.method!r}")


def load_abi(path: Path | str) -> list[dict[str, Any]]:
    """Read a contract ABI (bare list or a Hardhat/Foundry artifact with an 'abi' key)."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict) and "abi" in data:
        data = data["abi"]
    if not isinstance(data, list):
        raise ValueError(f"ABI at {path} is not a JSON list")
    return data


def create_prediction_call(prediction: Prediction) -> CallSpec:
    return CallSpec(
        method=CREATE_PREDICTION,
        args=(
            prediction.description,
            prediction.duration,
            prediction.min_votes,
            prediction.max_votes,
            prediction.prediction_type,
            prediction.options_count,
            list(prediction.tags),
        ),
    )


def finalize_prediction_call(prediction_id: int, outcome: Outcome) -> CallSpec:
    return CallSpec(
        method=FINALIZE_PREDICTION,
        args=(prediction_id, int(outcome)),
    )
