"""
Oracle Error Taxonomy

One exception per pipeline stage. Every error carries a context dict that is
rendered into str() so log lines and HTTP error bodies say which stage failed
and for which input.
"""
from __future__ import annotations

from typing import Any, Optional


class OracleError(Exception):
    """Base exception for all prediction-oracle errors."""

    def __init__(
        self,
        message: str,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} [{ctx_str}]"
        return self.message


class RetrievalError(OracleError):
    """Raised when the fact provider cannot return a digest."""

    def __init__(
        self,
        message: str,
        query: str,
        status: Optional[int] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        ctx = dict(context or {})
        ctx["query"] = repr(query)[:80]
        if status is not None:
            ctx["status"] = status
        super().__init__(message, ctx)
        self.query = query
        self.status = status


class CompletionError(OracleError):
    """Raised when the language model call fails or returns nothing."""


class GenerationError(OracleError):
    """Raised when predictions cannot be generated for a topic."""

    def __init__(
        self,
        message: str,
        topic: str,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        ctx = dict(context or {})
        ctx["topic"] = repr(topic)[:80]
        super().__init__(message, ctx)
        self.topic = topic


class AdjudicationError(OracleError):
    """Raised when the model's verdict is missing or not exactly 0 or 1."""

    def __init__(
        self,
        message: str,
        verdict_line: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        ctx = dict(context or {})
        if verdict_line is not None:
            ctx["verdict_line"] = repr(verdict_line)[:40]
        super().__init__(message, ctx)
        self.verdict_line = verdict_line


class SequencingError(OracleError):
    """Raised when a write transaction is rejected or fails to confirm."""

    def __init__(
        self,
        message: str,
        method: str,
        nonce: Optional[int] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        ctx = dict(context or {})
        ctx["method"] = method
        if nonce is not None:
            ctx["nonce"] = nonce
        super().__init__(message, ctx)
        self.method = method
        self.nonce = nonce


class StaleSequenceError(SequencingError):
    """The chain rejected the transaction's nonce as already used."""


class TransactionRevertedError(SequencingError):
    """The transaction was mined but its execution reverted."""


class ContractReadError(OracleError):
    """Raised when a read-only contract call fails."""

    def __init__(
        self,
        message: str,
        method: str,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        ctx = dict(context or {})
        ctx["method"] = method
        super().__init__(message, ctx)
        self.method = method
