"""
Prediction Lifecycle

Public API:
    LifecycleOrchestrator — creation, finalization and their dry runs
    PredictionFeed        — Redis pub/sub feed of lifecycle events
"""
from lifecycle.events import FeedError, PredictionFeed
from lifecycle.orchestrator import (
    CreationItem,
    CreationReport,
    FinalizationResult,
    LifecycleOrchestrator,
    OutcomePreview,
)

__all__ = [
    "CreationItem",
    "CreationReport",
    "FeedError",
    "FinalizationResult",
    "LifecycleOrchestrator",
    "OutcomePreview",
    "PredictionFeed",
]
