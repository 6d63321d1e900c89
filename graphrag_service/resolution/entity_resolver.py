"""
Entity Resolver for deduplicating extracted entities into canonical records.
"""

import asyncio
import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence

from ..errors import OracleFailure
from ..models.embeddings import Embedder
from ..models.llm_manager import LLMManager
from ..models.schemas import CanonicalEntityResponse
from .models import EntityRecord
from .similarity import cosine_similarity, string_similarity

logger = logging.getLogger(__name__)


class EntityResolver:
    """
    Greedy single-pass clustering of near-duplicate entities.

    Each unassigned entity seeds a new cluster and absorbs every later
    unassigned entity whose similarity to the seed reaches the threshold.
    Assignment is never revisited, so the result depends on input order.
    """

    SIMILARITY_THRESHOLD = 0.85
    NAME_WEIGHT = 0.4
    TYPE_WEIGHT = 0.3
    EMBEDDING_WEIGHT = 0.3

    def __init__(self, llm_manager: Optional[LLMManager] = None, embedder: Optional[Embedder] = None):
        self.llm_manager = llm_manager
        self.embedder = embedder

        self._canonical_entities: Dict[str, EntityRecord] = {}
        self._canonical_lock = asyncio.Lock()
        self._embedding_cache: Dict[str, List[float]] = {}
        self._embedding_lock = asyncio.Lock()

    async def resolve_entities(self, entities: Sequence[EntityRecord]) -> List[EntityRecord]:
        """
        Deduplicate entities.

        Args:
            entities: Extracted entity records, in extraction order

        Returns:
            One canonical record per cluster, in seed order
        """
        logger.info(f"Resolving {len(entities)} entities for deduplication")

        embeddings = await self._collect_embeddings(entities)
        clusters = self.cluster_similar_entities(entities, embeddings)

        resolved = []
        for cluster in clusters:
            resolved.append(await self.merge_entity_cluster(
                [entities[i] for i in cluster], [embeddings[i] for i in cluster]
            ))

        async with self._canonical_lock:
            for record in resolved:
                self._canonical_entities[record.canonical_id] = record

        logger.info(f"Resolved {len(entities)} entities to {len(resolved)} canonical entities")
        return resolved

    def cluster_similar_entities(
        self,
        entities: Sequence[EntityRecord],
        embeddings: Optional[List[Optional[List[float]]]] = None
    ) -> List[List[int]]:
        """Return clusters as lists of indices into ``entities``."""
        if embeddings is None:
            embeddings = [e.embedding for e in entities]

        clusters = []
        assigned = set()
        for i in range(len(entities)):
            if i in assigned:
                continue
            cluster = [i]
            assigned.add(i)
            for j in range(i + 1, len(entities)):
                if j in assigned:
                    continue
                similarity = self.calculate_entity_similarity(
                    entities[i], entities[j], embeddings[i], embeddings[j]
                )
                if similarity >= self.SIMILARITY_THRESHOLD:
                    cluster.append(j)
                    assigned.add(j)
            clusters.append(cluster)
        return clusters

    def calculate_entity_similarity(
        self,
        entity1: EntityRecord,
        entity2: EntityRecord,
        embedding1: Optional[List[float]] = None,
        embedding2: Optional[List[float]] = None
    ) -> float:
        """0.4 name + 0.3 exact type + 0.3 embedding cosine (name similarity without embeddings)."""
        embedding1 = embedding1 if embedding1 is not None else entity1.embedding
        embedding2 = embedding2 if embedding2 is not None else entity2.embedding

        name_similarity = string_similarity(entity1.name, entity2.name)
        type_similarity = 1.0 if entity1.type == entity2.type else 0.0
        if embedding1 and embedding2:
            embedding_similarity = cosine_similarity(embedding1, embedding2)
        else:
            embedding_similarity = name_similarity

        return (
            self.NAME_WEIGHT * name_similarity
            + self.TYPE_WEIGHT * type_similarity
            + self.EMBEDDING_WEIGHT * embedding_similarity
        )

    async def merge_entity_cluster(
        self,
        cluster: List[EntityRecord],
        embeddings: Optional[List[Optional[List[float]]]] = None
    ) -> EntityRecord:
        """
        Collapse a cluster into one canonical record.

        ``embeddings`` lines up with ``cluster``; a vector computed during
        resolution is carried onto the result when the member has none.
        """
        if embeddings is None:
            embeddings = [entity.embedding for entity in cluster]

        if len(cluster) == 1:
            entity = cluster[0]
            if entity.embedding or not embeddings[0]:
                return entity
            return replace(entity, embedding=list(embeddings[0]))

        base, name, entity_type = await self.determine_canonical_entity(cluster)
        base_index = next(i for i, entity in enumerate(cluster) if entity is base)
        embedding = base.embedding or embeddings[base_index]
        return EntityRecord(
            id=base.id,
            name=name,
            type=entity_type,
            attributes=self.merge_attributes(cluster),
            embedding=list(embedding) if embedding else None,
            merged_from=[entity.id for entity in cluster],
            canonical_id=base.canonical_id,
            confidence=self.calculate_merge_confidence(cluster),
            source_count=len(cluster)
        )

    async def determine_canonical_entity(self, cluster: List[EntityRecord]):
        """Return (base record, canonical name, canonical type); first member on any oracle problem."""
        fallback = (cluster[0], cluster[0].name, cluster[0].type)
        if self.llm_manager is None:
            return fallback

        entity_list = ", ".join(f"{e.name} ({e.type})" for e in cluster)
        prompt = f"""Determine the canonical representation for these similar entities:
Entities: {entity_list}

The canonical name must be one of the listed names.
Return JSON: {{"canonicalName": "name", "canonicalType": "type", "reasoning": "explanation"}}"""

        try:
            response = await self.llm_manager.generate_structured(
                prompt, CanonicalEntityResponse, component="entity_resolver", temperature=0.1
            )
        except OracleFailure as e:
            logger.warning(f"Canonical naming failed: {e}, using first cluster member")
            return fallback

        base = next((e for e in cluster if e.name == response.canonical_name), None)
        if base is None:
            logger.warning(
                f"Canonical name '{response.canonical_name}' is not in the cluster, using first cluster member"
            )
            return fallback

        cluster_types = {e.type for e in cluster}
        entity_type = response.canonical_type if response.canonical_type in cluster_types else base.type
        return base, base.name, entity_type

    @staticmethod
    def merge_attributes(cluster: List[EntityRecord]) -> Dict[str, Any]:
        """Longest string wins per key; other values are replaced by later members."""
        merged: Dict[str, Any] = {}
        for entity in cluster:
            for key, value in (entity.attributes or {}).items():
                existing = merged.get(key)
                if not existing:
                    merged[key] = value
                elif isinstance(value, str) and isinstance(existing, str):
                    if len(value) > len(existing):
                        merged[key] = value
                else:
                    merged[key] = value
        return merged

    @staticmethod
    def calculate_merge_confidence(cluster: List[EntityRecord]) -> float:
        """Average name similarity between the seed and each other member."""
        seed = cluster[0]
        others = cluster[1:]
        return sum(string_similarity(seed.name, e.name) for e in others) / len(others)

    async def _collect_embeddings(self, entities: Sequence[EntityRecord]) -> List[Optional[List[float]]]:
        """Existing embeddings, filled from the embedder where missing."""
        embeddings: List[Optional[List[float]]] = []
        for entity in entities:
            if entity.embedding:
                embeddings.append(entity.embedding)
            else:
                embeddings.append(await self._embed_name(entity.name))
        return embeddings

    async def _embed_name(self, name: str) -> Optional[List[float]]:
        if self.embedder is None:
            return None
        key = name.lower()
        async with self._embedding_lock:
            if key in self._embedding_cache:
                return self._embedding_cache[key]
        try:
            vector = await self.embedder.embed(name)
        except Exception as e:
            logger.warning(f"Embedding failed for '{name}': {e}, using name similarity")
            return None
        async with self._embedding_lock:
            self._embedding_cache[key] = vector
        return vector

    async def known_entities(self) -> List[EntityRecord]:
        """Canonical records produced by this resolver so far."""
        async with self._canonical_lock:
            return list(self._canonical_entities.values())

    def get_stats(self) -> Dict[str, Any]:
        return {
            "canonical_entities": len(self._canonical_entities),
            "cached_embeddings": len(self._embedding_cache),
            "similarity_threshold": self.SIMILARITY_THRESHOLD,
        }
