"""
Common contract for retrieval agents.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from ..router.query_analyzer import QueryAnalysis
from .models import AgentResult


class RetrievalAgent(ABC):
    """Turns a query and its analysis into a ranked AgentResult."""

    strategy: str = ""
    component: str = ""

    @abstractmethod
    async def retrieve(
        self,
        query: str,
        analysis: QueryAnalysis,
        context: Optional[Dict[str, Any]] = None
    ) -> AgentResult:
        """
        Retrieve documents for a query.

        Raises:
            BackendFailure: if the underlying store call fails
        """
