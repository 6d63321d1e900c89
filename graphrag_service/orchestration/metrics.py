"""
Metrics collector for retrieval latency, confidence and strategy effectiveness.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List


@dataclass
class RetrievalMetric:
    query: str
    strategy: str
    latency_ms: float
    confidence: float
    document_count: int
    success: bool
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


@dataclass
class StrategyStats:
    count: int = 0
    total_latency_ms: float = 0.0
    success_count: int = 0


class MetricsCollector:
    """In-memory retrieval metrics for one service instance."""

    RECENT_WINDOW = 100
    SUCCESS_CONFIDENCE = 0.3
    STRATEGY_SUCCESS_CONFIDENCE = 0.5

    def __init__(self):
        self.performance_metrics: List[RetrievalMetric] = []
        self.strategy_stats: Dict[str, StrategyStats] = {}

    def record_retrieval(
        self,
        query: str,
        strategy: str,
        latency_ms: float,
        confidence: float,
        document_count: int
    ):
        self.performance_metrics.append(RetrievalMetric(
            query=query,
            strategy=strategy,
            latency_ms=latency_ms,
            confidence=confidence,
            document_count=document_count,
            success=confidence > self.SUCCESS_CONFIDENCE
        ))

        stats = self.strategy_stats.setdefault(strategy, StrategyStats())
        stats.count += 1
        stats.total_latency_ms += latency_ms
        if confidence > self.STRATEGY_SUCCESS_CONFIDENCE:
            stats.success_count += 1

    def get_strategy_effectiveness(self) -> Dict[str, Dict[str, float]]:
        return {
            strategy: {
                "usage_count": stats.count,
                "average_latency_ms": stats.total_latency_ms / stats.count,
                "success_rate": stats.success_count / stats.count * 100,
            }
            for strategy, stats in self.strategy_stats.items()
        }

    def get_performance_report(self) -> Dict[str, Any]:
        """Totals plus averages over the most recent queries."""
        recent = self.performance_metrics[-self.RECENT_WINDOW:]
        if recent:
            average_latency = sum(m.latency_ms for m in recent) / len(recent)
            success_rate = sum(1 for m in recent if m.success) / len(recent) * 100
        else:
            average_latency = 0.0
            success_rate = 0.0

        return {
            "total_queries": len(self.performance_metrics),
            "average_latency_ms": average_latency,
            "success_rate": success_rate,
            "strategy_distribution": self.get_strategy_effectiveness(),
            "recent_performance": [asdict(m) for m in recent],
        }
