"""
Prediction Lifecycle Feed

Publishes "created" and "finalized" events to Redis pub/sub so dashboards
can follow the oracle without polling the contract.

Channel naming scheme:
  predictions:all        — every lifecycle event
  predictions:created    — one event per prediction accepted on-chain
  predictions:finalized  — one event per resolution accepted on-chain

Wire format (envelope):
  {
    "channel": "predictions:created",
    "data": {"event": "created", "timestamp": "...", ...event fields...}
  }

Usage:
    async with PredictionFeed(redis_url="redis://localhost:6379/0") as feed:
        await feed.prediction_created(prediction, tx_hash)
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Protocol

from redis.asyncio import Redis
from redis.exceptions import RedisError

from agents.prompts import PROMPT_VERSION

if TYPE_CHECKING:
    from agents.schemas import Outcome, Prediction

logger = logging.getLogger(__name__)

ALL = "predictions:all"
CREATED = "predictions:created"
FINALIZED = "predictions:finalized"


class FeedError(Exception):
    """Raised when a lifecycle event cannot be encoded or published."""


class LifecycleEvents(Protocol):
    """Sink the orchestrator reports successful on-chain writes to."""

    async def prediction_created(self, prediction: Prediction, tx_hash: str) -> None:
        ...

    async def prediction_finalized(self, prediction_id: int, outcome: Outcome, tx_hash: str) -> None:
        ...


def encode_event(channel: str, data: dict[str, Any]) -> str:
    """
    Encode a channel name and event dict into the JSON envelope.

    Raises FeedError if encoding fails.
    """
    try:
        return json.dumps({"channel": channel, "data": data}, default=str)
    except (TypeError, ValueError) as exc:
        raise FeedError(f"Failed to serialize lifecycle event: {exc}") from exc


def _event(kind: str, **fields: Any) -> dict[str, Any]:
    return {
        "event": kind,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "prompt_version": PROMPT_VERSION,
        **fields,
    }


class PredictionFeed:
    """Redis-backed LifecycleEvents."""

    def __init__(self, redis_url: str) -> None:
        self._redis_url = redis_url
        self._redis: Redis | None = None

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def connect(self) -> None:
        """Open the Redis connection."""
        self._redis = Redis.from_url(self._redis_url, decode_responses=False)
        try:
            await self._redis.ping()
            logger.info("PredictionFeed connected to Redis at %s", self._redis_url)
        except RedisError as exc:
            raise FeedError(f"Cannot connect to Redis: {exc}") from exc

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            logger.info("PredictionFeed disconnected from Redis")

    async def __aenter__(self) -> PredictionFeed:
        await self.connect()
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    # ── Publish ───────────────────────────────────────────────────────────────

    async def _publish(self, channels: list[str], data: dict[str, Any]) -> int:
        if self._redis is None:
            raise FeedError("PredictionFeed is not connected — call connect() first")

        total = 0
        for channel in channels:
            payload = encode_event(channel, data)
            try:
                total += await self._redis.publish(channel, payload)
            except RedisError as exc:
                raise FeedError(f"Redis publish failed on channel '{channel}'") from exc

        logger.debug(
            "Published %s to %d channel(s), reached %d subscriber(s)",
            data["event"],
            len(channels),
            total,
        )
        return total

    async def prediction_created(self, prediction: Prediction, tx_hash: str) -> None:
        data = _event("created", transactionHash=tx_hash, **prediction.to_dict())
        await self._publish([ALL, CREATED], data)

    async def prediction_finalized(self, prediction_id: int, outcome: Outcome, tx_hash: str) -> None:
        data = _event(
            "finalized",
            predictionId=prediction_id,
            outcome=int(outcome),
            transactionHash=tx_hash,
        )
        await self._publish([ALL, FINALIZED], data)
