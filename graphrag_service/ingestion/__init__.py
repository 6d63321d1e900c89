"""
Knowledge ingestion: ontology generation and knowledge graph construction.
"""

from .ontology_manager import OntologyManager
from .knowledge_graph_builder import KnowledgeGraphBuilder, IngestionResult, generate_entity_id

__all__ = [
    "OntologyManager",
    "KnowledgeGraphBuilder",
    "IngestionResult",
    "generate_entity_id",
]
