"""
Query analysis and retrieval strategy selection.
"""

from .query_analyzer import QueryAnalysis, QueryAnalyzer
from .query_router import QueryRouter, RetrievalStrategy, RoutingDecision

__all__ = [
    "QueryAnalysis",
    "QueryAnalyzer",
    "QueryRouter",
    "RetrievalStrategy",
    "RoutingDecision",
]
