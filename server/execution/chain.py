"""
EVM Chain Gateway

web3.py implementation of the chain capabilities the sequencer and the
orchestrator need: transaction count, signed sends, receipts and read-only
contract calls. All web3 / transport exceptions are mapped to the oracle
error taxonomy here so callers never see library types.
"""
from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

import aiohttp
from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import AsyncWeb3
from web3.exceptions import TimeExhausted, Web3Exception

from core.config import ChainConfig
from core.errors import (
    ContractReadError,
    SequencingError,
    StaleSequenceError,
    TransactionRevertedError,
)
from execution.contract import CallSpec, load_abi

logger = logging.getLogger(__name__)

RPC_TIMEOUT_S = 30

# Node error messages meaning "this nonce is already used or out of order".
# Wording differs between geth, erigon, anvil and hosted RPCs.
STALE_NONCE_MARKERS = (
    "nonce too low",
    "nonce has already been used",
    "invalid nonce",
    "already known",
    "replacement transaction underpriced",
)


def is_stale_nonce_error(error: BaseException | str) -> bool:
    """True if the chain rejected a send because its nonce is stale."""
    message = str(error).lower()
    return any(marker in message for marker in STALE_NONCE_MARKERS)


@runtime_checkable
class ChainGateway(Protocol):
    """What the sequencer and orchestrator require of the chain."""

    @property
    def address(self) -> str:
        """Checksum address of the signing identity."""
        ...

    async def get_transaction_count(self) -> int:
        ...

    async def send(self, call: CallSpec, nonce: int) -> str:
        """
        Sign and broadcast *call* with *nonce*; return the tx hash.

        Raises StaleSequenceError when the nonce is rejected as stale and
        SequencingError for every other rejection.
        """
        ...

    async def wait_for_receipt(self, tx_hash: str) -> dict[str, Any]:
        ...

    async def call(self, method: str, *args: Any) -> Any:
        """Run a read-only contract method; raises ContractReadError."""
        ...


class Web3Chain:
    """
    ChainGateway backed by an AsyncWeb3 HTTP provider and a local key.

    Usage:
        chain = Web3Chain.from_config(settings.chain)
        tx_hash = await chain.send(call, nonce)
        await chain.close()
    """

    def __init__(
        self,
        w3: AsyncWeb3,
        account: LocalAccount,
        contract: Any,
        receipt_timeout_s: float = 180.0,
    ) -> None:
        self._w3 = w3
        self._account = account
        self._contract = contract
        self._receipt_timeout_s = receipt_timeout_s

    @classmethod
    def from_config(cls, config: ChainConfig) -> Web3Chain:
        w3 = AsyncWeb3(
            AsyncWeb3.AsyncHTTPProvider(
                config.rpc_url,
                request_kwargs={"timeout": aiohttp.ClientTimeout(total=RPC_TIMEOUT_S)},
            )
        )
        account = Account.from_key(config.private_key)
        contract = w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(config.contract_address),
            abi=load_abi(config.abi_path),
        )
        logger.info(f"Chain gateway for contract {contract.address}, signer {account.address}")
        return cls(w3, account, contract, receipt_timeout_s=config.receipt_timeout_s)

    @property
    def address(self) -> str:
        return self._account.address

    async def close(self) -> None:
        await self._w3.provider.disconnect()

    async def get_transaction_count(self) -> int:
        try:
            return await self._w3.eth.get_transaction_count(self._account.address, "pending")
        except (Web3Exception, ValueError, aiohttp.ClientError, TimeoutError) as e:
            raise SequencingError(
                f"Failed to read transaction count: {e}", method="eth_getTransactionCount"
            ) from e

    async def send(self, call: CallSpec, nonce: int) -> str:
        try:
            function = getattr(self._contract.functions, call.method)(*call.args)
            tx = await function.build_transaction({
                "from": self._account.address,
                "nonce": nonce,
            })
            signed = self._account.sign_transaction(tx)
            tx_hash = await self._w3.eth.send_raw_transaction(signed.raw_transaction)
        except (Web3Exception, ValueError, aiohttp.ClientError, TimeoutError) as e:
            if is_stale_nonce_error(e):
                raise StaleSequenceError(
                    f"Failed to submit {call.method}: {e}", method=call.method, nonce=nonce
                ) from e
            raise SequencingError(
                f"Failed to submit {call.method}: {e}", method=call.method, nonce=nonce
            ) from e
        return AsyncWeb3.to_hex(tx_hash)

    async def wait_for_receipt(self, tx_hash: str) -> dict[str, Any]:
        try:
            receipt = await self._w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self._receipt_timeout_s
            )
        except TimeExhausted as e:
            raise SequencingError(
                f"Transaction {tx_hash} not mined within {self._receipt_timeout_s}s",
                method="wait_for_transaction_receipt",
            ) from e
        except (Web3Exception, ValueError, aiohttp.ClientError, TimeoutError) as e:
            raise SequencingError(
                f"Failed to fetch receipt for {tx_hash}: {e}",
                method="wait_for_transaction_receipt",
            ) from e

        receipt = dict(receipt)
        if receipt.get("status") == 0:
            raise TransactionRevertedError(
                f"Transaction {tx_hash} reverted in block {receipt.get('blockNumber')}",
                method="wait_for_transaction_receipt",
            )
        return receipt

    async def call(self, method: str, *args: Any) -> Any:
        # web3 only accepts checksummed address arguments
        args = tuple(
            AsyncWeb3.to_checksum_address(a) if isinstance(a, str) and AsyncWeb3.is_address(a) else a
            for a in args
        )
        try:
            function = getattr(self._contract.functions, method)(*args)
            return await function.call()
        except (Web3Exception, ValueError, aiohttp.ClientError, TimeoutError) as e:
            raise ContractReadError(f"Contract read failed: {e}", method=method) from e
