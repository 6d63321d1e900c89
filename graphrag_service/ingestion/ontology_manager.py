"""
Ontology Manager for generating domain ontologies from sample documents.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from ..errors import OracleFailure
from ..models.llm_manager import LLMManager
from ..models.schemas import OntologyResponse

logger = logging.getLogger(__name__)


class OntologyManager:
    """Oracle-generated ontologies, cached per domain."""

    SAMPLE_DOCUMENTS = 3
    SAMPLE_LENGTH = 2000
    REQUIRED_FIELDS = ("entities", "relationships", "hierarchies")

    def __init__(self, llm_manager: LLMManager):
        self.llm_manager = llm_manager
        self.ontology_cache: Dict[str, Dict[str, Any]] = {}
        self._cache_lock = asyncio.Lock()

    async def generate_ontology(self, documents: List[Dict[str, Any]], domain: str = "general") -> Dict[str, Any]:
        """
        Generate an ontology from the first few documents.

        Args:
            documents: Dicts with a ``content`` key
            domain: Domain hint, also the cache key

        Returns:
            Ontology dict with entities, relationships and hierarchies

        Raises:
            OracleFailure: no documents, or the oracle output did not validate
        """
        async with self._cache_lock:
            if domain in self.ontology_cache:
                logger.info(f"Using cached ontology for domain '{domain}'")
                return self.ontology_cache[domain]

        if not documents:
            raise OracleFailure(
                "Ontology generation failed: no documents provided", component="ontology_manager"
            )

        samples = "\n\n".join(
            doc.get("content", "")[:self.SAMPLE_LENGTH] for doc in documents[:self.SAMPLE_DOCUMENTS]
        )
        prompt = f"""You are an expert ontologist and knowledge engineer.
Analyze the provided documents and generate an ontology including entity types,
relationship types, hierarchical (is-a) structures and domain-specific properties.

Domain Context: {domain}

Documents: {samples}

Return ONLY JSON in this exact format:
{{
  "version": "1.0",
  "domain": "extracted_domain",
  "entities": [
    {{"name": "EntityName", "description": "Clear description", "attributes": ["attr1"], "relationships": ["relates_to_entity"], "examples": ["example1"]}}
  ],
  "relationships": [
    {{"name": "relationship_name", "description": "Semantic meaning", "source": "entity_type", "target": "entity_type", "properties": ["confidence"]}}
  ],
  "hierarchies": [
    {{"parent": "GeneralConcept", "children": ["SpecificConcept1"]}}
  ]
}}"""

        try:
            response = await self.llm_manager.generate_structured(
                prompt, OntologyResponse, component="ontology_manager", temperature=0.1, max_tokens=4000
            )
        except OracleFailure as e:
            logger.error(f"Ontology generation failed: {e}")
            raise OracleFailure(f"Ontology generation failed: {e.message}", component="ontology_manager") from e

        ontology = response.model_dump()
        async with self._cache_lock:
            self.ontology_cache[domain] = ontology
        logger.info(
            f"Generated ontology for '{domain}' with {len(ontology['entities'])} entity types "
            f"and {len(ontology['relationships'])} relationship types"
        )
        return ontology

    async def refine_ontology(self, ontology: Dict[str, Any], feedback: str) -> Dict[str, Any]:
        """Refine an ontology with user feedback; the result is validated like a fresh one."""
        prompt = f"""You are an ontology refinement expert. Improve the structure based on feedback.

Existing Ontology: {json.dumps(ontology, indent=2)}

User Feedback: {feedback}

Return ONLY the refined ontology JSON in the same format."""

        response = await self.llm_manager.generate_structured(
            prompt, OntologyResponse, component="ontology_manager", temperature=0.1, max_tokens=4000
        )
        refined = response.model_dump()

        domain = refined.get("domain")
        if domain:
            async with self._cache_lock:
                if domain in self.ontology_cache:
                    self.ontology_cache[domain] = refined
        return refined

    def validate_ontology(self, ontology: Dict[str, Any]) -> bool:
        missing = [f for f in self.REQUIRED_FIELDS if ontology.get(f) is None]
        if missing:
            raise ValueError(f"Invalid ontology: Missing fields - {', '.join(missing)}")
        return True

    def get_cached_ontology(self, domain: str) -> Optional[Dict[str, Any]]:
        return self.ontology_cache.get(domain)
