"""
Query Router for selecting a retrieval strategy from a query analysis.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Tuple

from .query_analyzer import QueryAnalysis

logger = logging.getLogger(__name__)


class RetrievalStrategy(Enum):
    """Retrieval approaches a query can be routed to."""
    SEMANTIC = "semantic"        # vector similarity
    RELATIONAL = "relational"    # graph traversal
    FACTUAL = "factual"          # attribute filtering
    COMPLEX = "complex"          # all three, fused


@dataclass
class RoutingDecision:
    """Result of strategy selection."""
    strategy: RetrievalStrategy
    rule: int
    reasoning: str


class QueryRouter:
    """
    Deterministic strategy selection.

    Rules are evaluated in priority order and the first match wins; the last
    rule always matches so every analysis maps to exactly one strategy.
    """

    RULES: List[Tuple[str, RetrievalStrategy]] = [
        ("complexity is high or reasoning requires multi_hop", RetrievalStrategy.COMPLEX),
        ("intent contains semantic or similar", RetrievalStrategy.SEMANTIC),
        ("intent contains relational or connection", RetrievalStrategy.RELATIONAL),
        ("intent contains factual or filter", RetrievalStrategy.FACTUAL),
        ("no specific intent matched, maximizing recall", RetrievalStrategy.COMPLEX),
    ]

    def route(self, analysis: QueryAnalysis) -> RoutingDecision:
        """
        Route an analysis to a strategy.

        Args:
            analysis: Analysis of the user's query

        Returns:
            RoutingDecision naming the strategy and the rule that fired
        """
        rule = self._match_rule(analysis)
        description, strategy = self.RULES[rule - 1]
        logger.info(f"Selected strategy {strategy.value} (rule {rule}: {description})")
        return RoutingDecision(strategy=strategy, rule=rule, reasoning=description)

    def select_strategy(self, analysis: QueryAnalysis) -> RetrievalStrategy:
        return self.route(analysis).strategy

    @staticmethod
    def _match_rule(analysis: QueryAnalysis) -> int:
        intent = set(analysis.intent)
        if analysis.complexity == "high" or "multi_hop" in analysis.required_reasoning:
            return 1
        if intent & {"semantic", "similar"}:
            return 2
        if intent & {"relational", "connection"}:
            return 3
        if intent & {"factual", "filter"}:
            return 4
        return 5

    def get_routing_stats(self) -> Dict[str, Any]:
        """Get the rule table in priority order."""
        return {
            "rules": [
                {"priority": i + 1, "condition": description, "strategy": strategy.value}
                for i, (description, strategy) in enumerate(self.RULES)
            ]
        }
