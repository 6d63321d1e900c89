"""
Retrieval orchestration and metrics.
"""

from .metrics import MetricsCollector
from .retrieval_orchestrator import (
    FusedResult,
    QueryResponse,
    ReasoningChain,
    RetrievalOrchestrator,
    RetrievalOutcome,
    SynthesizedAnswer,
)

__all__ = [
    "MetricsCollector",
    "FusedResult",
    "QueryResponse",
    "ReasoningChain",
    "RetrievalOrchestrator",
    "RetrievalOutcome",
    "SynthesizedAnswer",
]
