"""
Tests for lifecycle.orchestrator

Runs the real generator, adjudicator and sequencer over the in-memory mock
backends, so nonce handling and per-item failure are exercised end to end.
"""
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from agents.adjudicator import OutcomeAdjudicator
from agents.generator import PredictionGenerator
from agents.prompts import ADJUDICATION_SYSTEM_PROMPT
from agents.schemas import Outcome
from core.errors import (
    AdjudicationError,
    ContractReadError,
    GenerationError,
    RetrievalError,
    SequencingError,
    StaleSequenceError,
    TransactionRevertedError,
)
from execution.contract import CREATE_PREDICTION, FINALIZE_PREDICTION
from execution.sequencer import TransactionSequencer
from lifecycle.events import FeedError
from lifecycle.orchestrator import CreationItem, LifecycleOrchestrator
from mock_backends import MOCK_SIGNER, InMemoryChain, MockCompletionClient, MockFactProvider


class ScriptedVerdicts(MockCompletionClient):
    """Mock model whose adjudication answers are fixed instead of random."""

    def __init__(self, verdict: str = "Reports confirm it happened.\n1") -> None:
        super().__init__()
        self.verdict = verdict
        self.adjudication_prompts: list[str] = []

    async def complete(self, system_prompt, user_prompt, *, temperature, max_tokens=1024):
        if system_prompt == ADJUDICATION_SYSTEM_PROMPT:
            self.adjudication_prompts.append(user_prompt)
            return self.verdict
        return await super().complete(
            system_prompt, user_prompt, temperature=temperature, max_tokens=max_tokens
        )


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture
def facts():
    return MockFactProvider()


@pytest.fixture
def llm():
    return ScriptedVerdicts()


@pytest.fixture
def chain():
    return InMemoryChain(transaction_count=40)


@pytest.fixture
def events():
    sink = MagicMock()
    sink.prediction_created = AsyncMock()
    sink.prediction_finalized = AsyncMock()
    return sink


@pytest.fixture
def orchestrator(facts, llm, chain, events):
    return LifecycleOrchestrator(
        facts=facts,
        generator=PredictionGenerator(facts, llm),
        adjudicator=OutcomeAdjudicator(llm),
        chain=chain,
        sequencer=TransactionSequencer(chain),
        events=events,
    )


# ── Creation ──────────────────────────────────────────────────────────────────

async def test_create_submits_every_prediction_in_order(orchestrator, chain, events):
    report = await orchestrator.create_predictions("renewable energy")

    assert report.succeeded == 3
    assert [nonce for _, nonce in chain.sent] == [40, 41, 42]
    assert [call.method for call, _ in chain.sent] == [CREATE_PREDICTION] * 3
    assert [call.args[0] for call, _ in chain.sent] == [
        item.prediction.description for item in report.items
    ]
    assert events.prediction_created.await_count == 3


async def test_create_report_serialization(orchestrator):
    report = await orchestrator.create_predictions("renewable energy")

    body = report.to_dict()
    assert len(body["predictions"]) == 3
    for entry in body["predictions"]:
        assert entry["transactionHash"].startswith("0x")
        assert (entry["minVotes"], entry["maxVotes"]) == (1, 1000)
        assert (entry["predictionType"], entry["optionsCount"]) == (0, 2)
        assert "error" not in entry


async def test_create_partial_failure_keeps_every_item(orchestrator, chain):
    chain.failures[2] = SequencingError(
        "Failed to submit createPrediction: insufficient funds", method=CREATE_PREDICTION
    )

    report = await orchestrator.create_predictions("renewable energy")

    assert [item.ok for item in report.items] == [True, False, True]
    assert "insufficient funds" in report.items[1].error
    assert report.items[1].error.startswith("Failed to create prediction on contract")
    assert report.items[1].transaction_hash is None
    # The rejected send did not burn a nonce.
    assert [nonce for _, nonce in chain.sent] == [40, 41]


async def test_create_unmapped_failure_is_per_item(orchestrator, chain, events):
    chain.failures[2] = RuntimeError("abi encoding failed for argument 'tags'")

    report = await orchestrator.create_predictions("renewable energy")

    assert len(report.items) == 3
    assert [item.ok for item in report.items] == [True, False, True]
    assert "abi encoding failed" in report.items[1].error
    assert [nonce for _, nonce in chain.sent] == [40, 41]
    assert events.prediction_created.await_count == 2


async def test_create_stale_nonce_recovers_for_later_items(orchestrator, chain):
    chain.failures[1] = StaleSequenceError("nonce too low", method=CREATE_PREDICTION, nonce=40)

    report = await orchestrator.create_predictions("renewable energy")

    assert [item.ok for item in report.items] == [False, True, True]
    assert chain.count_reads == 2


async def test_create_confirmation_failure_is_per_item(orchestrator, chain):
    original_wait = chain.wait_for_receipt
    calls = 0

    async def revert_first(tx_hash):
        nonlocal calls
        calls += 1
        if calls == 1:
            raise TransactionRevertedError("reverted", method="wait_for_transaction_receipt")
        return await original_wait(tx_hash)

    chain.wait_for_receipt = revert_first

    report = await orchestrator.create_predictions("renewable energy")

    assert report.succeeded == 2
    assert sum(1 for item in report.items if not item.ok) == 1


async def test_create_generation_failure_sends_nothing(orchestrator, chain, llm):
    llm.complete = AsyncMock(return_value="I cannot help with that.")

    with pytest.raises(GenerationError):
        await orchestrator.create_predictions("renewable energy")

    assert chain.send_attempts == 0
    assert chain.count_reads == 0


async def test_create_feed_failure_is_not_fatal(orchestrator, events):
    events.prediction_created.side_effect = FeedError("Redis publish failed")

    report = await orchestrator.create_predictions("renewable energy")

    assert report.succeeded == 3


async def test_create_without_events(facts, llm, chain):
    orchestrator = LifecycleOrchestrator(
        facts=facts,
        generator=PredictionGenerator(facts, llm),
        adjudicator=OutcomeAdjudicator(llm),
        chain=chain,
        sequencer=TransactionSequencer(chain),
    )
    report = await orchestrator.create_predictions("renewable energy")
    assert report.succeeded == 3


async def test_preview_predictions_does_not_touch_chain(orchestrator, chain):
    predictions = await orchestrator.preview_predictions("renewable energy")

    assert len(predictions) == 3
    assert chain.send_attempts == 0


def test_creation_item_requires_exactly_one_result():
    prediction = MagicMock()
    with pytest.raises(ValueError):
        CreationItem(prediction=prediction)
    with pytest.raises(ValueError):
        CreationItem(prediction=prediction, transaction_hash="0x1", error="boom")


# ── Finalization ──────────────────────────────────────────────────────────────

async def test_round_trip_create_then_finalize(orchestrator, chain, facts, llm, events):
    report = await orchestrator.create_predictions("renewable energy")
    description = report.items[1].prediction.description

    result = await orchestrator.finalize_prediction(1)

    call, nonce = chain.sent[-1]
    assert call.method == FINALIZE_PREDICTION
    assert call.args == (1, 1)
    assert nonce == 43
    assert result.outcome is Outcome.YES
    assert result.to_dict() == {
        "message": "Prediction 1 finalized successfully",
        "outcome": 1,
        "transactionHash": result.transaction_hash,
    }
    # Facts are fetched for the on-chain description, which the model sees.
    assert facts.queries[-1] == description
    assert description in llm.adjudication_prompts[-1]
    assert chain.predictions[1][7:] == [True, 1]
    events.prediction_finalized.assert_awaited_once_with(1, Outcome.YES, result.transaction_hash)


async def test_finalize_verdict_zero(orchestrator, chain, llm):
    await orchestrator.create_predictions("renewable energy")
    llm.verdict = "Nothing suggests this happened.\n0"

    result = await orchestrator.finalize_prediction(0)

    assert result.outcome is Outcome.NO
    assert chain.sent[-1][0].args == (0, 0)


async def test_finalize_unknown_prediction_raises_read_error(orchestrator, chain, facts):
    with pytest.raises(ContractReadError):
        await orchestrator.finalize_prediction(99)

    assert facts.queries == []
    assert chain.send_attempts == 0


async def test_finalize_ambiguous_verdict_sends_nothing(orchestrator, chain, llm):
    await orchestrator.create_predictions("renewable energy")
    sent_before = len(chain.sent)
    llm.verdict = "It is unclear.\nmaybe"

    with pytest.raises(AdjudicationError):
        await orchestrator.finalize_prediction(0)

    assert len(chain.sent) == sent_before


async def test_finalize_retrieval_failure_propagates(orchestrator, chain, facts):
    await orchestrator.create_predictions("renewable energy")
    facts.fetch_digest = AsyncMock(side_effect=RetrievalError("upstream 502", "q", status=502))

    with pytest.raises(RetrievalError):
        await orchestrator.finalize_prediction(0)


async def test_finalize_twice_is_rejected_by_contract(orchestrator, events):
    await orchestrator.create_predictions("renewable energy")
    await orchestrator.finalize_prediction(2)

    with pytest.raises(SequencingError, match="already finalized"):
        await orchestrator.finalize_prediction(2)

    assert events.prediction_finalized.await_count == 1


async def test_finalize_feed_failure_is_not_fatal(orchestrator, events):
    await orchestrator.create_predictions("renewable energy")
    events.prediction_finalized.side_effect = FeedError("Redis publish failed")

    result = await orchestrator.finalize_prediction(0)

    assert result.transaction_hash.startswith("0x")


async def test_read_prediction_rejects_malformed_tuple(orchestrator, chain):
    chain.call = AsyncMock(return_value=(12345, 10))

    with pytest.raises(ContractReadError, match="has no description"):
        await orchestrator.read_prediction(3)


# ── Previews and reads ────────────────────────────────────────────────────────

async def test_preview_outcome(orchestrator, chain, facts):
    preview = await orchestrator.preview_outcome("Will it snow in Paris this week?")

    assert preview.outcome is Outcome.YES
    assert facts.queries == ["Will it snow in Paris this week?"]
    assert chain.send_attempts == 0

    body = preview.to_dict()
    assert body["message"] == "Test prediction finalized successfully"
    assert body["description"] == "Will it snow in Paris this week?"
    assert body["outcome"] == 1
    assert body["currentData"] == preview.digest


async def test_get_prediction_and_user_stats(orchestrator):
    await orchestrator.create_predictions("renewable energy")

    details = await orchestrator.get_prediction(0)
    stats = await orchestrator.get_user_stats(MOCK_SIGNER)

    assert isinstance(details, tuple)
    assert details[2:4] == (1, 1000)
    assert stats == (3, 0, 100, 0)


async def test_generated_output_is_valid_json_for_mock_topic(llm):
    from agents.prompts import GENERATION_SYSTEM_PROMPT, build_generation_prompt

    raw = await llm.complete(
        GENERATION_SYSTEM_PROMPT,
        build_generation_prompt("solar tariffs", "digest", 3),
        temperature=0.7,
    )
    items = json.loads(raw)
    assert all("solar tariffs" in item["description"] for item in items)
