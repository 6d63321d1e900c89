"""
Data models for the storage backends.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union


@dataclass
class BackendRecord:
    """One ranked record returned by a store query."""
    id: str
    content: str
    score: float
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class VectorQuery:
    """Similarity query against the vector store."""
    vector: List[float]
    top_k: int = 10
    filter: Optional[Dict[str, Any]] = None


@dataclass
class FilterQuery:
    """Attribute query against the document store."""
    selector: Dict[str, Any] = field(default_factory=dict)
    fields: List[str] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    sort: List[Dict[str, str]] = field(default_factory=lambda: [{"timestamp": "desc"}])
    limit: int = 10

    def to_dict(self) -> Dict[str, Any]:
        return {
            "selector": self.selector,
            "fields": self.fields,
            "categories": self.categories,
            "sort": self.sort,
            "limit": self.limit,
        }


@dataclass
class NodeResult:
    """A node decoded from a graph query result."""
    element_id: str
    labels: List[str]
    properties: Dict[str, Any]

    @property
    def name(self) -> str:
        return str(self.properties.get("name", "Unknown"))


@dataclass
class RelationshipResult:
    """A relationship decoded from a graph query result."""
    element_id: str
    type: str
    start_id: Optional[str]
    end_id: Optional[str]
    properties: Dict[str, Any]


GraphValue = Union[NodeResult, RelationshipResult, Any]


@dataclass
class GraphRecord:
    """One graph result row with every value decoded into a tagged variant."""
    values: Dict[str, GraphValue]

    @property
    def nodes(self) -> List[NodeResult]:
        return [v for v in self.values.values() if isinstance(v, NodeResult)]

    @property
    def relationships(self) -> List[RelationshipResult]:
        return [v for v in self.values.values() if isinstance(v, RelationshipResult)]

    @property
    def scalars(self) -> Dict[str, Any]:
        return {
            k: v for k, v in self.values.items()
            if not isinstance(v, (NodeResult, RelationshipResult))
        }
