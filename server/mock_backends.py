"""
Mock retrieval, model and chain backends for running without credentials.

Generates plausible digests, prediction arrays and verdicts, and keeps an
in-memory contract with real nonce semantics (a reused nonce is rejected as
stale, a skipped one is rejected outright). The same backends drive the
orchestrator and API tests.

Usage:
    python main.py --mock
"""
from __future__ import annotations

import asyncio
import hashlib
import json
import random
from typing import Any

from agents.prompts import ADJUDICATION_SYSTEM_PROMPT, GENERATION_SYSTEM_PROMPT
from core.errors import (
    CompletionError,
    ContractReadError,
    SequencingError,
    StaleSequenceError,
)
from execution.contract import (
    CREATE_PREDICTION,
    FINALIZE_PREDICTION,
    GET_PREDICTION_DETAILS,
    GET_USER_STATS,
    CallSpec,
)

MOCK_SIGNER = "0x00000000000000000000000000000000000000A1"

DAY_S = 24 * 3600

MOCK_FACTS = [
    "Officials confirmed a new timeline this week, with a decision expected within 90 days.",
    "Analysts cite a 12% year-over-year increase in the headline metric as of last month.",
    "Two major stakeholders announced opposing positions in public statements on Tuesday.",
    "A draft proposal circulated on Monday; a formal vote has been scheduled for next quarter.",
    "Market participants are pricing roughly even odds of a policy change before year end.",
]

MOCK_REASONING = [
    "Recent reports confirm the event described in the prediction has occurred.",
    "No source confirms the outcome; evidence is insufficient, so the prediction is not met.",
    "The latest figures fall short of the threshold stated in the prediction.",
    "Multiple reliable sources report the milestone was reached ahead of schedule.",
]


async def _sleep(latency_range: tuple[float, float]) -> None:
    delay = random.uniform(*latency_range)
    if delay > 0:
        await asyncio.sleep(delay)


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------

class MockFactProvider:
    """DigestSource returning canned facts about any query."""

    def __init__(self, latency_range: tuple[float, float] = (0.0, 0.0)) -> None:
        self.latency_range = latency_range
        self.queries: list[str] = []

    async def fetch_digest(self, query: str) -> str:
        self.queries.append(query)
        await _sleep(self.latency_range)
        facts = random.sample(MOCK_FACTS, k=3)
        return f"Latest on {query}:\n" + "\n".join(f"- {fact}" for fact in facts)


# ---------------------------------------------------------------------------
# Language model
# ---------------------------------------------------------------------------

class MockCompletionClient:
    """
    Drop-in replacement for CompletionClient.

    Answers generation prompts with a JSON array and adjudication prompts
    with reasoning plus a random verdict line.
    """

    model = "mock"

    def __init__(self, latency_range: tuple[float, float] = (0.0, 0.0)) -> None:
        self.latency_range = latency_range

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float,
        max_tokens: int = 1024,
    ) -> str:
        await _sleep(self.latency_range)
        if system_prompt == GENERATION_SYSTEM_PROMPT:
            return self._predictions(user_prompt)
        if system_prompt == ADJUDICATION_SYSTEM_PROMPT:
            return f"{random.choice(MOCK_REASONING)}\n{random.randint(0, 1)}"
        raise CompletionError("Mock model received an unknown system prompt")

    @staticmethod
    def _predictions(user_prompt: str) -> str:
        first_line = user_prompt.strip().splitlines()[0]
        topic = first_line.removeprefix("Based on the following current information about ").rstrip(":")
        tag = topic.lower().replace(" ", "-")[:24] or "general"
        items = [
            {
                "description": f"Will there be an official announcement about {topic} within 30 days?",
                "duration": 30 * DAY_S,
                "tags": [tag, "announcements", "policy"],
            },
            {
                "description": f"Will the headline metric for {topic} rise more than 10% within 90 days?",
                "duration": 90 * DAY_S,
                "tags": [tag, "metrics", "growth", "markets"],
            },
            {
                "description": f"Will a formal vote on {topic} take place within 6 months?",
                "duration": 180 * DAY_S,
                "tags": [tag, "governance", "votes"],
            },
        ]
        return json.dumps(items)


# ---------------------------------------------------------------------------
# Chain
# ---------------------------------------------------------------------------

class InMemoryChain:
    """
    ChainGateway over an in-process prediction-market contract.

    Nonces are checked like a node would: lower than the account's count is
    stale, higher is a gap. `failures` maps a 1-based send attempt number
    to an exception that attempt raises instead of being accepted.
    """

    def __init__(
        self,
        address: str = MOCK_SIGNER,
        transaction_count: int = 0,
        latency_range: tuple[float, float] = (0.0, 0.0),
    ) -> None:
        self._address = address
        self.transaction_count = transaction_count
        self.latency_range = latency_range
        self.failures: dict[int, Exception] = {}
        self.sent: list[tuple[CallSpec, int]] = []
        self.count_reads = 0
        self.send_attempts = 0
        self.predictions: dict[int, list[Any]] = {}
        self._receipts: dict[str, dict[str, Any]] = {}
        self._block = 0

    @property
    def address(self) -> str:
        return self._address

    async def get_transaction_count(self) -> int:
        self.count_reads += 1
        await _sleep(self.latency_range)
        return self.transaction_count

    async def send(self, call: CallSpec, nonce: int) -> str:
        self.send_attempts += 1
        await _sleep(self.latency_range)

        failure = self.failures.pop(self.send_attempts, None)
        if failure is not None:
            raise failure
        if nonce < self.transaction_count:
            raise StaleSequenceError(
                f"Failed to submit {call.method}: nonce too low", method=call.method, nonce=nonce
            )
        if nonce > self.transaction_count:
            raise SequencingError(
                f"Failed to submit {call.method}: nonce gap (expected {self.transaction_count})",
                method=call.method,
                nonce=nonce,
            )

        self._apply(call)
        self.transaction_count += 1
        self.sent.append((call, nonce))
        self._block += 1

        tx_hash = "0x" + hashlib.sha256(f"{self._address}:{nonce}".encode()).hexdigest()
        self._receipts[tx_hash] = {"status": 1, "blockNumber": self._block, "transactionHash": tx_hash}
        return tx_hash

    def _apply(self, call: CallSpec) -> None:
        if call.method == CREATE_PREDICTION:
            description, duration, min_votes, max_votes, prediction_type, options_count, tags = call.args
            prediction_id = len(self.predictions)
            self.predictions[prediction_id] = [
                description, duration, min_votes, max_votes,
                prediction_type, options_count, list(tags), False, 0,
            ]
        elif call.method == FINALIZE_PREDICTION:
            prediction_id, outcome = call.args
            record = self.predictions.get(prediction_id)
            if record is None:
                raise SequencingError("execution reverted: unknown prediction", method=call.method)
            if record[7]:
                raise SequencingError("execution reverted: already finalized", method=call.method)
            record[7] = True
            record[8] = outcome

    async def wait_for_receipt(self, tx_hash: str) -> dict[str, Any]:
        await _sleep(self.latency_range)
        receipt = self._receipts.get(tx_hash)
        if receipt is None:
            raise SequencingError(f"Unknown transaction {tx_hash}", method="wait_for_transaction_receipt")
        return receipt

    async def call(self, method: str, *args: Any) -> Any:
        await _sleep(self.latency_range)
        if method == GET_PREDICTION_DETAILS:
            (prediction_id,) = args
            record = self.predictions.get(prediction_id)
            if record is None:
                raise ContractReadError(
                    f"Contract read failed: execution reverted: prediction {prediction_id} does not exist",
                    method=method,
                )
            return tuple(record)
        if method == GET_USER_STATS:
            created = len(self.predictions) if args[0] == self._address else 0
            return (created, 0, 100, 0)
        raise ContractReadError(f"Contract read failed: unknown method {method}", method=method)
