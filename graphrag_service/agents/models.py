"""
Data models for the retrieval agents.
"""

from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import Any, Dict, List, Optional


@dataclass
class Document:
    """A retrieved document; identity is the id, scoped to the producing agent."""
    id: str
    content: str
    score: float
    metadata: Dict[str, Any] = field(default_factory=dict)
    source: str = ""
    combined_score: Optional[float] = None

    def with_combined_score(self, weight: float, source: str) -> "Document":
        """Copy weighted for fusion and attributed to the producing strategy."""
        return replace(self, combined_score=self.score * weight, source=source)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "content": self.content,
            "score": self.score,
            "metadata": self.metadata,
            "source": self.source,
        }
        if self.combined_score is not None:
            data["combined_score"] = self.combined_score
        return data


@dataclass
class AgentResult:
    """Ranked output of one retrieval agent."""
    documents: List[Document]
    strategy: str
    latency: timedelta
    confidence: float
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "documents": [d.to_dict() for d in self.documents],
            "strategy": self.strategy,
            "latency_ms": self.latency.total_seconds() * 1000,
            "confidence": self.confidence,
            "metadata": self.metadata,
        }
