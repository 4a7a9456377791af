"""
Transaction Sequencer

Serializes contract writes from a single signing identity.

The nonce is owned by a NonceManager: an asyncio.Lock around a lazily
initialized counter. The lock is held from allocation until the chain has
accepted or rejected the send, so:

  - only one coroutine ever reads the chain's transaction count at a time,
  - nonces are handed out in lock-acquisition (FIFO) order with no repeats,
  - a rejected send leaves its nonce unconsumed, so no gap is created.

Confirmation is awaited outside the lock; later submissions never wait for
earlier receipts.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, AsyncIterator, Awaitable, Callable

from core.errors import SequencingError, StaleSequenceError

if TYPE_CHECKING:
    from execution.chain import ChainGateway
    from execution.contract import CallSpec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransactionHandle:
    """A transaction the chain accepted for broadcast."""

    tx_hash: str
    nonce: int
    method: str


class NonceManager:
    """
    Process-wide next-nonce counter for one signing identity.

    allocate() yields the nonce to use; it is consumed only if the body
    exits normally. report_stale() drops the cached value so the next
    allocation re-reads the chain.
    """

    def __init__(self, fetch_count: Callable[[], Awaitable[int]]) -> None:
        self._fetch_count = fetch_count
        self._lock = asyncio.Lock()
        self._next: int | None = None

    @property
    def current(self) -> int | None:
        """The next nonce to hand out, or None while uninitialized."""
        return self._next

    @asynccontextmanager
    async def allocate(self) -> AsyncIterator[int]:
        async with self._lock:
            if self._next is None:
                self._next = await self._fetch_count()
                logger.info(f"Nonce initialized from chain: {self._next}")
            nonce = self._next
            yield nonce
            # Only reached when the send was accepted.
            self._next = nonce + 1

    def report_stale(self) -> None:
        """Forget the cached nonce; the next allocation re-fetches it."""
        logger.warning(f"Nonce {self._next} reported stale, resetting")
        self._next = None


class TransactionSequencer:
    """Submits CallSpecs through a ChainGateway with managed nonces."""

    def __init__(self, chain: ChainGateway, nonces: NonceManager | None = None) -> None:
        self._chain = chain
        self._nonces = nonces or NonceManager(chain.get_transaction_count)

    @property
    def nonces(self) -> NonceManager:
        return self._nonces

    async def submit(self, call: CallSpec) -> TransactionHandle:
        """
        Broadcast *call* with the next nonce.

        Raises StaleSequenceError (after resetting the nonce) when the chain
        rejects the nonce, and SequencingError for any other rejection. The
        failed call is never retried here.
        """
        async with self._nonces.allocate() as nonce:
            logger.info(f"Submitting {call.method} with nonce {nonce}")
            try:
                tx_hash = await self._chain.send(call, nonce)
            except StaleSequenceError:
                self._nonces.report_stale()
                raise
            except SequencingError as e:
                logger.error(f"{call.method} rejected at nonce {nonce}: {e}")
                raise

        logger.info(f"Transaction sent: {tx_hash} ({call.method}, nonce {nonce})")
        return TransactionHandle(tx_hash=tx_hash, nonce=nonce, method=call.method)

    async def wait(self, handle: TransactionHandle) -> dict[str, Any]:
        """Await inclusion of *handle*; raises SequencingError on revert or timeout."""
        receipt = await self._chain.wait_for_receipt(handle.tx_hash)
        logger.info(
            f"Transaction {handle.tx_hash} confirmed in block {receipt.get('blockNumber')}"
        )
        return receipt
