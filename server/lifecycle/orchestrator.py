"""
Lifecycle Orchestrator

Composes facts, generator, adjudicator and sequencer into the two
end-to-end flows plus their dry-run variants:

  create_predictions   topic -> generate -> submit each -> confirm each
  finalize_prediction  id -> read -> digest -> adjudicate -> submit -> confirm
  preview_predictions  topic -> generate (no chain)
  preview_outcome      description -> digest -> adjudicate (no chain)

Creation tolerates per-item failure: every generated prediction comes back
annotated with either a transaction hash or an error. Every other flow has a
single outcome and fails as a whole.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from agents.schemas import ChainPrediction, Outcome, Prediction
from core.errors import ContractReadError, OracleError
from execution.contract import (
    GET_PREDICTION_DETAILS,
    GET_USER_STATS,
    create_prediction_call,
    finalize_prediction_call,
)
from lifecycle.events import FeedError

if TYPE_CHECKING:
    from agents.adjudicator import OutcomeAdjudicator
    from agents.generator import PredictionGenerator
    from execution.chain import ChainGateway
    from execution.sequencer import TransactionSequencer
    from facts.client import DigestSource
    from lifecycle.events import LifecycleEvents

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CreationItem:
    """One generated prediction and what happened when it was submitted."""

    prediction: Prediction
    transaction_hash: str | None = None
    error: str | None = None

    def __post_init__(self) -> None:
        if (self.transaction_hash is None) == (self.error is None):
            raise ValueError("exactly one of transaction_hash or error must be set")

    @property
    def ok(self) -> bool:
        return self.transaction_hash is not None

    def to_dict(self) -> dict[str, Any]:
        d = self.prediction.to_dict()
        if self.ok:
            d["transactionHash"] = self.transaction_hash
        else:
            d["error"] = self.error
        return d


@dataclass(frozen=True)
class CreationReport:
    topic: str
    items: list[CreationItem] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for item in self.items if item.ok)

    def to_dict(self) -> dict[str, Any]:
        return {"predictions": [item.to_dict() for item in self.items]}


@dataclass(frozen=True)
class FinalizationResult:
    prediction_id: int
    outcome: Outcome
    transaction_hash: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": f"Prediction {self.prediction_id} finalized successfully",
            "outcome": int(self.outcome),
            "transactionHash": self.transaction_hash,
        }


@dataclass(frozen=True)
class OutcomePreview:
    description: str
    outcome: Outcome
    digest: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": "Test prediction finalized successfully",
            "description": self.description,
            "outcome": int(self.outcome),
            "currentData": self.digest,
        }


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class LifecycleOrchestrator:
    """
    Runs the prediction lifecycle against injected collaborators.

    Every long-lived connection (retrieval session, Groq client, chain) is
    passed in, so tests substitute fakes for all of them.
    """

    def __init__(
        self,
        facts: DigestSource,
        generator: PredictionGenerator,
        adjudicator: OutcomeAdjudicator,
        chain: ChainGateway,
        sequencer: TransactionSequencer,
        events: LifecycleEvents | None = None,
    ) -> None:
        self._facts = facts
        self._generator = generator
        self._adjudicator = adjudicator
        self._chain = chain
        self._sequencer = sequencer
        self._events = events

    # ── Creation ──────────────────────────────────────────────────

    async def preview_predictions(self, topic: str) -> list[Prediction]:
        """Generate without submitting. Raises GenerationError."""
        return await self._generator.generate(topic)

    async def create_predictions(self, topic: str) -> CreationReport:
        """
        Generate predictions for *topic* and submit each one on-chain.

        Generation failure raises GenerationError. Submission failures are
        recorded on their item; the report always lists every prediction in
        generation order.
        """
        predictions = await self._generator.generate(topic)

        # Submissions overlap in flight but take nonces in list order,
        # since the sequencer's lock is FIFO.
        items = await asyncio.gather(*(self._create_one(p) for p in predictions))

        report = CreationReport(topic=topic, items=list(items))
        logger.info(
            f"Created {report.succeeded}/{len(report.items)} predictions for {topic!r}"
        )
        return report

    async def _create_one(self, prediction: Prediction) -> CreationItem:
        try:
            handle = await self._sequencer.submit(create_prediction_call(prediction))
            await self._sequencer.wait(handle)
        except OracleError as e:
            logger.error(f"Error creating prediction {prediction.description[:60]!r}: {e}")
            return CreationItem(
                prediction=prediction,
                error=f"Failed to create prediction on contract: {e}",
            )
        except Exception as e:
            # Every generated prediction gets an item, whatever the failure.
            logger.exception(f"Unexpected error creating prediction {prediction.description[:60]!r}")
            return CreationItem(
                prediction=prediction,
                error=f"Failed to create prediction on contract: {e}",
            )

        await self._publish_created(prediction, handle.tx_hash)
        return CreationItem(prediction=prediction, transaction_hash=handle.tx_hash)

    # ── Finalization ──────────────────────────────────────────────

    async def preview_outcome(self, description: str) -> OutcomePreview:
        """
        Judge *description* against fresh facts without touching the chain.

        Raises RetrievalError or AdjudicationError.
        """
        digest = await self._facts.fetch_digest(description)
        outcome = await self._adjudicator.adjudicate(description, digest)
        return OutcomePreview(description=description, outcome=outcome, digest=digest)

    async def finalize_prediction(self, prediction_id: int) -> FinalizationResult:
        """
        Adjudicate an on-chain prediction and submit the verdict.

        Any stage failure propagates: ContractReadError, RetrievalError,
        AdjudicationError or SequencingError.
        """
        prediction = await self.read_prediction(prediction_id)
        logger.info(f"Finalizing prediction {prediction_id}: {prediction.description}")

        digest = await self._facts.fetch_digest(prediction.description)
        outcome = await self._adjudicator.adjudicate(prediction.description, digest)
        logger.info(f"Determined outcome for prediction {prediction_id}: {int(outcome)}")

        handle = await self._sequencer.submit(finalize_prediction_call(prediction_id, outcome))
        await self._sequencer.wait(handle)
        logger.info(f"Finalized prediction {prediction_id} with transaction hash: {handle.tx_hash}")

        await self._publish_finalized(prediction_id, outcome, handle.tx_hash)
        return FinalizationResult(
            prediction_id=prediction_id,
            outcome=outcome,
            transaction_hash=handle.tx_hash,
        )

    # ── Reads ─────────────────────────────────────────────────────

    async def read_prediction(self, prediction_id: int) -> ChainPrediction:
        raw = await self._chain.call(GET_PREDICTION_DETAILS, prediction_id)
        try:
            return ChainPrediction.from_tuple(prediction_id, raw)
        except (TypeError, ValueError) as e:
            raise ContractReadError(str(e), method=GET_PREDICTION_DETAILS) from e

    async def get_prediction(self, prediction_id: int) -> Any:
        """Raw getPredictionDetails tuple."""
        return await self._chain.call(GET_PREDICTION_DETAILS, prediction_id)

    async def get_user_stats(self, address: str) -> Any:
        """Raw getUserStats tuple."""
        return await self._chain.call(GET_USER_STATS, address)

    # ── Events ────────────────────────────────────────────────────

    async def _publish_created(self, prediction: Prediction, tx_hash: str) -> None:
        if self._events is None:
            return
        try:
            await self._events.prediction_created(prediction, tx_hash)
        except FeedError as e:
            logger.warning(f"Lifecycle feed publish failed (non-fatal): {e}")

    async def _publish_finalized(self, prediction_id: int, outcome: Outcome, tx_hash: str) -> None:
        if self._events is None:
            return
        try:
            await self._events.prediction_finalized(prediction_id, outcome, tx_hash)
        except FeedError as e:
            logger.warning(f"Lifecycle feed publish failed (non-fatal): {e}")
