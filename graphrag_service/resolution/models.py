"""
Data models for entity resolution.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class EntityRecord:
    """An extracted entity, or the canonical record standing in for several."""
    id: str
    name: str
    type: str
    attributes: Dict[str, Any] = field(default_factory=dict)
    embedding: Optional[List[float]] = None
    merged_from: List[str] = field(default_factory=list)
    canonical_id: Optional[str] = None
    confidence: float = 1.0
    source_count: int = 1

    def __post_init__(self):
        if self.canonical_id is None:
            self.canonical_id = self.id

    def to_graph_dict(self) -> Dict[str, Any]:
        return {
            "canonicalId": self.canonical_id,
            "name": self.name,
            "type": self.type,
            "attributes": self.attributes,
            "embedding": self.embedding,
            "mergedFrom": self.merged_from,
        }
