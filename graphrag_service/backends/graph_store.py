"""
Neo4j-backed graph store for relational retrieval and graph persistence.
"""

import asyncio
import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from neo4j import GraphDatabase
from neo4j.graph import Node, Path, Relationship

from ..errors import BackendFailure, ValidationFailure
from ..models.llm_manager import resolve_env_vars
from .models import GraphRecord, NodeResult, RelationshipResult

logger = logging.getLogger(__name__)

# Destructive operations a generated read query may never contain
DESTRUCTIVE_PATTERNS: List[Tuple[str, "re.Pattern"]] = [
    ("DROP", re.compile(r"\bDROP\b", re.IGNORECASE)),
    ("DELETE", re.compile(r"\bDELETE\b", re.IGNORECASE)),
    ("CREATE CONSTRAINT", re.compile(r"\bCREATE\s+CONSTRAINT\b", re.IGNORECASE)),
    ("CREATE INDEX", re.compile(r"\bCREATE\s+INDEX\b", re.IGNORECASE)),
]


def validate_cypher(statement: str, component: str = "graph_store", query: Optional[str] = None) -> str:
    """
    Reject a Cypher statement containing a destructive operation.

    Raises:
        ValidationFailure: naming the first disallowed pattern found
    """
    for name, pattern in DESTRUCTIVE_PATTERNS:
        if pattern.search(statement):
            logger.error(f"Rejected Cypher containing {name}: {statement}")
            raise ValidationFailure(
                f"Potentially dangerous Cypher query detected: {name}",
                component=component,
                query=query,
                pattern=name
            )
    return statement


def sanitize_relationship_type(rel_type: str) -> str:
    """Relationship types are interpolated into Cypher, so restrict them to [A-Z0-9_]."""
    cleaned = re.sub(r"[^A-Za-z0-9_]", "_", rel_type.strip()).upper()
    if not cleaned or cleaned[0].isdigit():
        cleaned = f"REL_{cleaned}"
    return cleaned


def decode_value(value: Any) -> Any:
    """Decode a driver value into NodeResult, RelationshipResult or a plain value."""
    if isinstance(value, Node):
        return NodeResult(
            element_id=value.element_id,
            labels=sorted(value.labels),
            properties=dict(value)
        )
    if isinstance(value, Relationship):
        return RelationshipResult(
            element_id=value.element_id,
            type=value.type,
            start_id=value.start_node.element_id if value.start_node is not None else None,
            end_id=value.end_node.element_id if value.end_node is not None else None,
            properties=dict(value)
        )
    if isinstance(value, list):
        return [decode_value(item) for item in value]
    return value


def decode_record(record: Dict[str, Any]) -> GraphRecord:
    """Decode one result row; paths and lists are flattened into indexed keys."""
    values: Dict[str, Any] = {}
    for key, value in record.items():
        if isinstance(value, Path):
            for i, node in enumerate(value.nodes):
                values[f"{key}_node_{i}"] = decode_value(node)
            for i, rel in enumerate(value.relationships):
                values[f"{key}_rel_{i}"] = decode_value(rel)
        elif isinstance(value, list) and any(isinstance(v, (Node, Relationship)) for v in value):
            for i, item in enumerate(value):
                values[f"{key}_{i}"] = decode_value(item)
        else:
            values[key] = decode_value(value)
    return GraphRecord(values=values)


class Neo4jGraphStore:
    """Graph store over a Neo4j database."""

    def __init__(self, config: Dict[str, Any], driver: Optional[Any] = None):
        self.config = config
        self.database = config.get("database")
        self.uri = resolve_env_vars(config.get("database_url", "bolt://localhost:7687"))

        if driver is not None:
            self.driver = driver
        else:
            self.driver = GraphDatabase.driver(
                self.uri,
                auth=(
                    resolve_env_vars(config.get("username", "neo4j")),
                    resolve_env_vars(config.get("password", ""))
                )
            )
        logger.info(f"Neo4j graph store initialized ({self.uri})")

    def _session(self):
        if self.database:
            return self.driver.session(database=self.database)
        return self.driver.session()

    async def run_read(
        self,
        cypher: str,
        parameters: Optional[Dict[str, Any]] = None,
        query: Optional[str] = None
    ) -> List[GraphRecord]:
        """
        Validate and execute a read query.

        Args:
            cypher: Cypher statement
            parameters: Query parameters
            query: Original user query, carried by failures

        Returns:
            Decoded result rows

        Raises:
            ValidationFailure: statement contains a destructive operation
            BackendFailure: Neo4j call failed
        """
        validate_cypher(cypher, component="graph_store", query=query)

        def _run() -> List[GraphRecord]:
            with self._session() as session:
                result = session.run(cypher, parameters or {})
                return [decode_record(dict(record.items())) for record in result]

        try:
            return await asyncio.to_thread(_run)
        except Exception as e:
            logger.error(f"Graph query execution failed: {e}")
            raise BackendFailure(f"Graph query failed: {e}", component="graph_store", query=query) from e

    async def persist_graph(
        self,
        entities: List[Dict[str, Any]],
        relationships: List[Dict[str, Any]]
    ) -> Tuple[int, int]:
        """
        MERGE canonical entities and relationships into the graph.

        Args:
            entities: Dicts with canonicalId, name, type, attributes, embedding, mergedFrom
            relationships: Dicts with sourceId, targetId, type, properties

        Returns:
            (entities written, relationships written)
        """
        entity_batch = [
            {
                "canonicalId": entity["canonicalId"],
                "name": entity["name"],
                "type": entity["type"],
                "attributes": json.dumps(entity.get("attributes") or {}, default=str),
                "embedding": entity.get("embedding") or [],
                "mergedFrom": entity.get("mergedFrom") or [],
            }
            for entity in entities
        ]

        def _persist() -> Tuple[int, int]:
            with self._session() as session:
                session.run(
                    "CREATE CONSTRAINT entity_canonical_id IF NOT EXISTS "
                    "FOR (e:Entity) REQUIRE e.canonicalId IS UNIQUE"
                )
                session.run(
                    """UNWIND $entities AS entity
                       MERGE (e:Entity {canonicalId: entity.canonicalId})
                       SET e.name = entity.name,
                           e.type = entity.type,
                           e.attributes = entity.attributes,
                           e.embedding = entity.embedding,
                           e.mergedFrom = entity.mergedFrom""",
                    {"entities": entity_batch}
                )
                written = 0
                for rel in relationships:
                    rel_type = sanitize_relationship_type(rel["type"])
                    result = session.run(
                        f"""MATCH (source:Entity {{canonicalId: $sourceId}})
                            MATCH (target:Entity {{canonicalId: $targetId}})
                            MERGE (source)-[r:{rel_type}]->(target)
                            SET r += $properties
                            RETURN count(r) AS created""",
                        {
                            "sourceId": rel["sourceId"],
                            "targetId": rel["targetId"],
                            "properties": rel.get("properties") or {}
                        }
                    )
                    record = result.single()
                    written += record["created"] if record else 0
                return len(entity_batch), written

        try:
            counts = await asyncio.to_thread(_persist)
        except Exception as e:
            logger.error(f"Failed to persist graph: {e}")
            raise BackendFailure(f"Graph persistence failed: {e}", component="graph_store") from e

        logger.info(f"Persisted {counts[0]} entities and {counts[1]} relationships")
        return counts

    def get_stats(self) -> Dict[str, Any]:
        """Get Neo4j graph statistics."""
        try:
            with self._session() as session:
                node_count = session.run("MATCH (n) RETURN count(n) as node_count").single()["node_count"]
                rel_count = session.run("MATCH ()-[r]->() RETURN count(r) as rel_count").single()["rel_count"]
                labels = session.run(
                    "CALL db.labels() YIELD label RETURN collect(label) as labels"
                ).single()["labels"]
                types = session.run(
                    "CALL db.relationshipTypes() YIELD relationshipType RETURN collect(relationshipType) as types"
                ).single()["types"]

                return {
                    "total_entities": node_count,
                    "total_relationships": rel_count,
                    "entity_types": labels,
                    "relationship_types": types,
                    "neo4j_uri": self.uri
                }

        except Exception as e:
            logger.error(f"Failed to get Neo4j stats: {e}")
            return {
                "total_entities": 0,
                "total_relationships": 0,
                "entity_types": [],
                "relationship_types": [],
                "neo4j_uri": self.uri,
                "error": str(e)
            }

    def close(self):
        """Close the Neo4j driver connection."""
        if self.driver:
            self.driver.close()
