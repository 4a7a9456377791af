"""
Oracle Core

Configuration and the error taxonomy shared by every pipeline stage.
"""
from core.config import ConfigurationError, Settings, load_settings
from core.errors import (
    AdjudicationError,
    CompletionError,
    ContractReadError,
    GenerationError,
    OracleError,
    RetrievalError,
    SequencingError,
    StaleSequenceError,
    TransactionRevertedError,
)

__all__ = [
    "AdjudicationError",
    "CompletionError",
    "ConfigurationError",
    "ContractReadError",
    "GenerationError",
    "OracleError",
    "RetrievalError",
    "SequencingError",
    "Settings",
    "StaleSequenceError",
    "TransactionRevertedError",
    "load_settings",
]
