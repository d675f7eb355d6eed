"""
Analyzer - Message Filtering and Classification

Key Components:
- filter_messages: Drops noise and boilerplate, truncates long bodies
- ClassificationOrchestrator: Batch or realtime LLM classification
- BatchJob / PollPolicy: Message Batch polling state machine
"""

from .message_filter import FilterOutcome, FilterStats, classify_message, filter_messages, truncate
from .batch import BatchJob, BatchState, PollDecision, PollPolicy
from .orchestrator import (
    AnalysisOutcome,
    ClassificationOrchestrator,
    FailureKind,
    ItemFailure,
    build_correlation,
)

__all__ = [
    "FilterOutcome",
    "FilterStats",
    "classify_message",
    "filter_messages",
    "truncate",
    "BatchJob",
    "BatchState",
    "PollDecision",
    "PollPolicy",
    "AnalysisOutcome",
    "ClassificationOrchestrator",
    "FailureKind",
    "ItemFailure",
    "build_correlation",
]
