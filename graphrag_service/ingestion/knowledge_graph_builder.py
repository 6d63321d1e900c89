"""
Knowledge Graph Builder: documents to a deduplicated, persisted knowledge graph.
"""

import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from langchain_text_splitters import RecursiveCharacterTextSplitter

from ..backends.document_store import DocumentStore, StoredDocument
from ..backends.graph_store import Neo4jGraphStore
from ..backends.vector_store import PineconeVectorStore
from ..models.embeddings import Embedder
from ..models.llm_manager import LLMManager
from ..models.schemas import ExtractedEntityList, ExtractedRelationshipList
from ..resolution.entity_resolver import EntityResolver
from ..resolution.models import EntityRecord
from .ontology_manager import OntologyManager

logger = logging.getLogger(__name__)

EXTRACTION_TEXT_LIMIT = 3000


@dataclass
class IngestionResult:
    """Result of ingesting a batch of documents."""
    nodes_created: int
    relationships_created: int
    ontology: Dict[str, Any]
    documents_processed: int = 0
    chunks_indexed: int = 0
    entities_extracted: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes_created": self.nodes_created,
            "relationships_created": self.relationships_created,
            "ontology": self.ontology,
            "documents_processed": self.documents_processed,
            "chunks_indexed": self.chunks_indexed,
            "entities_extracted": self.entities_extracted,
            "errors": self.errors,
        }


def generate_entity_id(entity_type: str, name: str) -> str:
    return re.sub(r"[^a-z0-9]", "_", f"{entity_type}_{name}".lower())


def _vector_metadata(metadata: Dict[str, Any]) -> Dict[str, Any]:
    """Keep only values Pinecone accepts as metadata."""
    cleaned = {}
    for key, value in metadata.items():
        if isinstance(value, (str, int, float, bool)):
            cleaned[key] = value
        elif isinstance(value, list) and all(isinstance(v, str) for v in value):
            cleaned[key] = value
    return cleaned


class KnowledgeGraphBuilder:
    """Ontology, extraction, entity resolution and persistence for a document batch."""

    def __init__(
        self,
        llm_manager: LLMManager,
        graph_store: Neo4jGraphStore,
        resolver: EntityResolver,
        ontology_manager: Optional[OntologyManager] = None,
        embedder: Optional[Embedder] = None,
        vector_store: Optional[PineconeVectorStore] = None,
        document_store: Optional[DocumentStore] = None,
        chunk_size: int = 500,
        chunk_overlap: int = 50
    ):
        self.llm_manager = llm_manager
        self.graph_store = graph_store
        self.resolver = resolver
        self.ontology_manager = ontology_manager or OntologyManager(llm_manager)
        self.embedder = embedder
        self.vector_store = vector_store
        self.document_store = document_store
        self.text_splitter = RecursiveCharacterTextSplitter(
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap
        )

    async def build_graph_from_documents(
        self,
        documents: List[Dict[str, Any]],
        domain: str = "general"
    ) -> IngestionResult:
        """
        Build the knowledge graph for a batch of documents.

        Args:
            documents: Dicts with ``content`` and optional ``metadata``
            domain: Domain hint for ontology generation

        Returns:
            IngestionResult with node and relationship counts and the ontology
        """
        logger.info(f"Building knowledge graph from {len(documents)} documents")

        ontology = await self.ontology_manager.generate_ontology(documents, domain)
        self.ontology_manager.validate_ontology(ontology)

        errors: List[str] = []
        entities, relationships = await self.extract_graph_elements(documents, ontology, errors)
        resolved = await self.resolver.resolve_entities(entities)
        canonical_relationships = self.remap_relationships(relationships, resolved)

        await self.graph_store.persist_graph(
            [record.to_graph_dict() for record in resolved],
            canonical_relationships
        )

        chunks_indexed = await self.index_documents(documents, domain)

        logger.info("Knowledge graph built successfully")
        return IngestionResult(
            nodes_created=len(resolved),
            relationships_created=len(canonical_relationships),
            ontology=ontology,
            documents_processed=len(documents),
            chunks_indexed=chunks_indexed,
            entities_extracted=len(entities),
            errors=errors
        )

    async def extract_graph_elements(
        self,
        documents: List[Dict[str, Any]],
        ontology: Dict[str, Any],
        errors: Optional[List[str]] = None
    ) -> Tuple[List[EntityRecord], List[Dict[str, Any]]]:
        entities: List[EntityRecord] = []
        relationships: List[Dict[str, Any]] = []

        for document in documents:
            text = document.get("content", "")
            doc_entities = await self.extract_entities_from_text(text, ontology)
            doc_relationships = await self.extract_relationships_from_text(
                text, ontology, doc_entities, errors
            )
            entities.extend(doc_entities)
            relationships.extend(doc_relationships)

        logger.info(f"Extracted {len(entities)} entities and {len(relationships)} relationships")
        return entities, relationships

    async def extract_entities_from_text(self, text: str, ontology: Dict[str, Any]) -> List[EntityRecord]:
        entity_types = [entity["name"] for entity in ontology.get("entities", [])]
        prompt = f"""Extract entities from the text following this ontology:
{json.dumps(entity_types)}

Text: {text[:EXTRACTION_TEXT_LIMIT]}

Return JSON: {{"entities": [{{"type": "EntityType", "name": "EntityName", "attributes": {{}}}}]}}"""

        response = await self.llm_manager.generate_structured(
            prompt, ExtractedEntityList, component="knowledge_graph_builder", temperature=0.1
        )
        return [
            EntityRecord(
                id=generate_entity_id(entity.type, entity.name),
                name=entity.name,
                type=entity.type,
                attributes=entity.attributes
            )
            for entity in response.entities
        ]

    async def extract_relationships_from_text(
        self,
        text: str,
        ontology: Dict[str, Any],
        entities: List[EntityRecord],
        errors: Optional[List[str]] = None
    ) -> List[Dict[str, Any]]:
        """
        Relationships between entities of the same document, keyed by entity id.

        Relationships naming an unknown entity are dropped and reported in
        ``errors`` when a list is given.
        """
        if len(entities) < 2:
            return []

        relationship_types = [rel["name"] for rel in ontology.get("relationships", [])]
        entity_names = [entity.name for entity in entities]
        prompt = f"""Extract relationships between these entities from the text.

Allowed relationship types: {json.dumps(relationship_types)}
Entities: {json.dumps(entity_names)}

Text: {text[:EXTRACTION_TEXT_LIMIT]}

Use entity names exactly as listed.
Return JSON: {{"relationships": [{{"source": "EntityName", "target": "EntityName", "type": "relationship_type", "properties": {{}}}}]}}"""

        response = await self.llm_manager.generate_structured(
            prompt, ExtractedRelationshipList, component="knowledge_graph_builder", temperature=0.1
        )

        ids_by_name = {entity.name: entity.id for entity in entities}
        relationships = []
        for rel in response.relationships:
            source_id = ids_by_name.get(rel.source)
            target_id = ids_by_name.get(rel.target)
            if source_id is None or target_id is None:
                message = f"Skipped relationship with unknown endpoint: {rel.source} -> {rel.target}"
                logger.warning(message)
                if errors is not None:
                    errors.append(message)
                continue
            relationships.append({
                "sourceId": source_id,
                "targetId": target_id,
                "type": rel.type,
                "properties": rel.properties
            })
        return relationships

    @staticmethod
    def remap_relationships(
        relationships: List[Dict[str, Any]],
        resolved: List[EntityRecord]
    ) -> List[Dict[str, Any]]:
        """Point relationship endpoints at canonical ids and drop duplicates."""
        canonical_ids: Dict[str, str] = {}
        for record in resolved:
            for source_id in record.merged_from or [record.id]:
                canonical_ids[source_id] = record.canonical_id

        remapped = []
        seen = set()
        for rel in relationships:
            source_id = canonical_ids.get(rel["sourceId"], rel["sourceId"])
            target_id = canonical_ids.get(rel["targetId"], rel["targetId"])
            key = (source_id, target_id, rel["type"])
            if key in seen:
                continue
            seen.add(key)
            remapped.append({**rel, "sourceId": source_id, "targetId": target_id})
        return remapped

    async def index_documents(self, documents: List[Dict[str, Any]], domain: str) -> int:
        """Store documents for attribute filtering and chunk them into the vector index."""
        chunks_indexed = 0
        for i, document in enumerate(documents):
            metadata = dict(document.get("metadata") or {})
            metadata.setdefault("domain", domain)
            doc_id = str(metadata.get("id") or f"{domain}_doc_{i}")

            if self.document_store is not None:
                self.document_store.add_document(
                    StoredDocument(id=doc_id, content=document.get("content", ""), metadata=metadata)
                )

            if self.vector_store is None or self.embedder is None:
                continue

            chunks = self.text_splitter.split_text(document.get("content", ""))
            if not chunks:
                continue
            vectors = await asyncio.gather(*(self.embedder.embed(chunk) for chunk in chunks))
            chunks_indexed += await self.vector_store.upsert_chunks(
                doc_id, chunks, list(vectors), metadata=_vector_metadata(metadata)
            )
        return chunks_indexed
