"""
Graph traversal agent: oracle-generated Cypher over the knowledge graph.
"""

import json
import logging
import re
import time
from datetime import timedelta
from typing import Any, Dict, List, Optional

from ..backends.graph_store import Neo4jGraphStore, validate_cypher
from ..backends.models import GraphRecord
from ..errors import BackendFailure, OracleFailure, ValidationFailure
from ..models.llm_manager import LLMManager
from ..router.query_analyzer import QueryAnalysis
from .base import RetrievalAgent
from .models import AgentResult, Document

logger = logging.getLogger(__name__)


class GraphTraversalAgent(RetrievalAgent):
    """Relational retrieval over the Neo4j knowledge graph."""

    strategy = "relational"
    component = "graph_agent"

    def __init__(self, config: Dict[str, Any], llm_manager: LLMManager, graph_store: Neo4jGraphStore):
        self.config = config
        self.llm_manager = llm_manager
        self.graph_store = graph_store
        self.temperature = config.get("temperature", 0.0)
        self.max_tokens = config.get("max_tokens", 500)
        self.result_limit = config.get("result_limit", 25)

    async def retrieve(
        self,
        query: str,
        analysis: QueryAnalysis,
        context: Optional[Dict[str, Any]] = None
    ) -> AgentResult:
        """
        Generate, validate and run a Cypher query.

        Args:
            query: The user's query
            analysis: Analysis of the query
            context: Optional request context

        Returns:
            AgentResult with one document per graph result row

        Raises:
            OracleFailure: Cypher generation failed
            ValidationFailure: generated Cypher contains a destructive operation
            BackendFailure: graph query failed
        """
        start_time = time.perf_counter()
        logger.info("Executing graph traversal retrieval")

        cypher = await self.generate_cypher_query(query, analysis)
        validate_cypher(cypher, component=self.component, query=query)

        try:
            records = await self.graph_store.run_read(cypher, query=query)
        except ValidationFailure:
            raise
        except BackendFailure as e:
            raise BackendFailure(e.message, component=self.component, query=query) from e

        documents = self.graph_results_to_documents(records)

        return AgentResult(
            documents=documents,
            strategy=self.strategy,
            latency=timedelta(seconds=time.perf_counter() - start_time),
            confidence=self.calculate_confidence(records),
            metadata={
                "cypher": cypher,
                "result_type": "graph",
                "result_count": len(records)
            }
        )

    async def generate_cypher_query(
        self,
        query: str,
        analysis: QueryAnalysis
    ) -> str:
        prompt = f"""Convert this natural language query to Cypher for Neo4j:

Query: "{query}"

Query Analysis: {json.dumps(analysis.to_dict())}

Available node labels: Entity, Concept, Document
Entity properties: canonicalId, name, type, attributes
Available relationships: RELATED_TO, PART_OF, MENTIONS, SIMILAR_TO

The query must be read-only and return at most {self.result_limit} rows. Return ONLY the Cypher query without explanations."""

        try:
            response = await self.llm_manager.generate(
                prompt, temperature=self.temperature, max_tokens=self.max_tokens
            )
        except Exception as e:
            logger.error(f"Cypher generation failed: {e}")
            raise OracleFailure(
                f"Cypher generation failed: {e}", component=self.component, query=query
            ) from e

        cypher = self.strip_code_fences(response or "")
        if not cypher:
            raise OracleFailure("Empty Cypher completion", component=self.component, query=query)
        return cypher

    @staticmethod
    def strip_code_fences(text: str) -> str:
        text = re.sub(r"```(?:cypher)?", "", text, flags=re.IGNORECASE)
        return text.strip().rstrip(";").strip()

    def graph_results_to_documents(self, records: List[GraphRecord]) -> List[Document]:
        documents = []
        for index, record in enumerate(records):
            relevance = self.calculate_graph_relevance(record)
            documents.append(Document(
                id=f"graph_{index}",
                content=self.format_graph_result(record),
                score=relevance,
                metadata={
                    "type": "graph_result",
                    "nodes": [
                        {"id": n.element_id, "labels": n.labels, "name": n.name}
                        for n in record.nodes
                    ],
                    "relationships": [
                        {"id": r.element_id, "type": r.type, "start": r.start_id, "end": r.end_id}
                        for r in record.relationships
                    ],
                    "score": relevance
                },
                source=self.strategy
            ))
        return documents

    @staticmethod
    def format_graph_result(record: GraphRecord) -> str:
        """Readable text for one result row."""
        parts = [f"Entity: {node.name} ({', '.join(node.labels)})" for node in record.nodes]
        parts.extend(f"Relationship: {rel.type}" for rel in record.relationships)
        if not parts:
            parts = [f"{key}: {value}" for key, value in record.scalars.items()]
        return " | ".join(parts)

    @staticmethod
    def calculate_graph_relevance(record: GraphRecord) -> float:
        score = 0.5 + min(len(record.relationships) * 0.1, 0.3)
        return min(score, 1.0)

    @staticmethod
    def calculate_confidence(records: List[GraphRecord]) -> float:
        if not records:
            return 0.2
        confidence = 0.5 + 0.05 * len(records)
        if any(record.relationships for record in records):
            confidence += 0.1
        return min(confidence, 0.95)
