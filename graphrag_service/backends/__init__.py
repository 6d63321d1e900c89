"""
Storage backends queried by the retrieval agents.
"""

from .models import BackendRecord, VectorQuery, FilterQuery, NodeResult, RelationshipResult, GraphRecord
from .vector_store import PineconeVectorStore
from .graph_store import Neo4jGraphStore, validate_cypher, sanitize_relationship_type
from .document_store import DocumentStore, StoredDocument

__all__ = [
    "BackendRecord",
    "VectorQuery",
    "FilterQuery",
    "NodeResult",
    "RelationshipResult",
    "GraphRecord",
    "PineconeVectorStore",
    "Neo4jGraphStore",
    "validate_cypher",
    "sanitize_relationship_type",
    "DocumentStore",
    "StoredDocument",
]
