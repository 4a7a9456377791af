"""
Tests for execution.chain

AsyncWeb3, the signing account and the contract are MagicMocks — no RPC
endpoint required.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest
from web3 import AsyncWeb3
from web3.exceptions import ContractLogicError, TimeExhausted

from core.errors import (
    ContractReadError,
    SequencingError,
    StaleSequenceError,
    TransactionRevertedError,
)
from execution.chain import ChainGateway, Web3Chain, is_stale_nonce_error
from execution.contract import CallSpec

SIGNER = "0x00000000000000000000000000000000000000A1"

CALL = CallSpec(
    method="createPrediction",
    args=("Will it rain in London tomorrow?", 86400, 1, 1000, 0, 2, ["weather", "london", "uk"]),
)


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture
def w3():
    mock = MagicMock()
    mock.eth.get_transaction_count = AsyncMock(return_value=7)
    mock.eth.send_raw_transaction = AsyncMock(return_value=bytes.fromhex("ab" * 32))
    mock.eth.wait_for_transaction_receipt = AsyncMock(
        return_value={"status": 1, "blockNumber": 123, "transactionHash": "0x" + "ab" * 32}
    )
    return mock


@pytest.fixture
def account():
    mock = MagicMock()
    mock.address = SIGNER
    mock.sign_transaction.return_value = MagicMock(raw_transaction=b"\x01signed")
    return mock


@pytest.fixture
def contract():
    mock = MagicMock()
    function = mock.functions.createPrediction.return_value
    function.build_transaction = AsyncMock(return_value={"to": "0xc0ffee", "nonce": 7})
    return mock


@pytest.fixture
def chain(w3, account, contract):
    return Web3Chain(w3, account, contract, receipt_timeout_s=5)


# ── is_stale_nonce_error() ────────────────────────────────────────────────────

@pytest.mark.parametrize(
    "message",
    [
        "nonce too low: next nonce 8, tx nonce 7",
        "Nonce has already been used",
        "{'code': -32000, 'message': 'already known'}",
        "replacement transaction underpriced",
        "Invalid nonce",
    ],
)
def test_stale_nonce_messages(message):
    assert is_stale_nonce_error(ValueError(message))


@pytest.mark.parametrize(
    "message",
    ["insufficient funds for gas * price + value", "execution reverted", "nonce too high"],
)
def test_other_messages_are_not_stale(message):
    assert not is_stale_nonce_error(message)


# ── Web3Chain ─────────────────────────────────────────────────────────────────

def test_satisfies_gateway_protocol(chain):
    assert isinstance(chain, ChainGateway)
    assert chain.address == SIGNER


async def test_transaction_count_uses_pending_block(chain, w3):
    assert await chain.get_transaction_count() == 7
    w3.eth.get_transaction_count.assert_awaited_once_with(SIGNER, "pending")


async def test_transaction_count_failure_raises_sequencing_error(chain, w3):
    w3.eth.get_transaction_count.side_effect = TimeoutError()
    with pytest.raises(SequencingError, match="transaction count"):
        await chain.get_transaction_count()


async def test_send_signs_with_given_nonce(chain, w3, account, contract):
    tx_hash = await chain.send(CALL, 7)

    assert tx_hash == "0x" + "ab" * 32
    contract.functions.createPrediction.assert_called_once_with(*CALL.args)
    build = contract.functions.createPrediction.return_value.build_transaction
    build.assert_awaited_once_with({"from": SIGNER, "nonce": 7})
    account.sign_transaction.assert_called_once_with({"to": "0xc0ffee", "nonce": 7})
    w3.eth.send_raw_transaction.assert_awaited_once_with(b"\x01signed")


async def test_send_stale_nonce_raises_stale_error(chain, w3):
    w3.eth.send_raw_transaction.side_effect = ValueError(
        {"code": -32000, "message": "nonce too low"}
    )

    with pytest.raises(StaleSequenceError) as exc_info:
        await chain.send(CALL, 7)

    assert exc_info.value.nonce == 7
    assert exc_info.value.method == "createPrediction"


async def test_send_other_rejection_raises_sequencing_error(chain, contract):
    build = contract.functions.createPrediction.return_value.build_transaction
    build.side_effect = ContractLogicError("execution reverted: duration too long")

    with pytest.raises(SequencingError, match="duration too long") as exc_info:
        await chain.send(CALL, 7)

    assert not isinstance(exc_info.value, StaleSequenceError)


async def test_receipt_returned_as_dict(chain):
    receipt = await chain.wait_for_receipt("0x" + "ab" * 32)
    assert receipt["blockNumber"] == 123


async def test_reverted_receipt_raises(chain, w3):
    w3.eth.wait_for_transaction_receipt.return_value = {"status": 0, "blockNumber": 9}

    with pytest.raises(TransactionRevertedError, match="reverted in block 9"):
        await chain.wait_for_receipt("0xdead")


async def test_receipt_timeout_raises(chain, w3):
    w3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("not found")

    with pytest.raises(SequencingError, match="not mined within 5s"):
        await chain.wait_for_receipt("0xdead")


async def test_call_returns_contract_value(chain, contract):
    contract.functions.getPredictionDetails.return_value.call = AsyncMock(
        return_value=("Will it rain?", 86400)
    )

    assert await chain.call("getPredictionDetails", 4) == ("Will it rain?", 86400)
    contract.functions.getPredictionDetails.assert_called_once_with(4)


async def test_call_checksums_address_arguments(chain, contract):
    contract.functions.getUserStats.return_value.call = AsyncMock(return_value=(1, 0, 100, 0))
    lower = SIGNER.lower()

    await chain.call("getUserStats", lower)

    contract.functions.getUserStats.assert_called_once_with(AsyncWeb3.to_checksum_address(lower))


async def test_call_failure_raises_contract_read_error(chain, contract):
    contract.functions.getPredictionDetails.return_value.call = AsyncMock(
        side_effect=ContractLogicError("execution reverted: no such prediction")
    )

    with pytest.raises(ContractReadError, match="no such prediction") as exc_info:
        await chain.call("getPredictionDetails", 99)

    assert exc_info.value.method == "getPredictionDetails"
