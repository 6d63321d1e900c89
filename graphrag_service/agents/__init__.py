"""
Retrieval agents: vector similarity, graph traversal and attribute filtering.
"""

from .models import Document, AgentResult
from .base import RetrievalAgent
from .vector_agent import VectorRetrievalAgent
from .graph_agent import GraphTraversalAgent
from .filter_agent import LogicalFilteringAgent

__all__ = [
    "Document",
    "AgentResult",
    "RetrievalAgent",
    "VectorRetrievalAgent",
    "GraphTraversalAgent",
    "LogicalFilteringAgent",
]
