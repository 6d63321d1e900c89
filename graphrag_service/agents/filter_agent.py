"""
Logical filtering agent: constraint extraction translated to attribute filters.
"""

import logging
import re
import time
from datetime import timedelta
from typing import Any, Dict, List, Optional

from ..backends.document_store import DocumentStore
from ..backends.models import BackendRecord, FilterQuery
from ..errors import BackendFailure, OracleFailure, RetrievalError
from ..models.llm_manager import LLMManager
from ..models.schemas import ConstraintResponse, NumericRange, TemporalConstraints
from ..router.query_analyzer import QueryAnalysis
from .base import RetrievalAgent
from .models import AgentResult, Document

logger = logging.getLogger(__name__)

DATE_PATTERN = re.compile(r"\b(\d{4}-\d{2}-\d{2}|\d{1,2}/\d{1,2}/\d{4})\b")
NUMBER_PATTERN = re.compile(r"\b(\d+\.?\d*)\b")


class LogicalFilteringAgent(RetrievalAgent):
    """Factual retrieval by attribute, temporal, categorical and numeric constraints."""

    strategy = "factual"
    component = "filter_agent"

    RESULT_LIMIT = 10

    def __init__(self, config: Dict[str, Any], llm_manager: LLMManager, document_store: DocumentStore):
        self.config = config
        self.llm_manager = llm_manager
        self.document_store = document_store
        self.temperature = config.get("temperature", 0.1)
        self.max_tokens = config.get("max_tokens", 500)

    async def retrieve(
        self,
        query: str,
        analysis: QueryAnalysis,
        context: Optional[Dict[str, Any]] = None
    ) -> AgentResult:
        """
        Extract constraints, build a filter query and run it.

        Args:
            query: The user's query
            analysis: Analysis of the query
            context: Optional request context; ``domain`` is added to the selector

        Returns:
            AgentResult with filtered documents

        Raises:
            BackendFailure: document store query failed
        """
        context = context or {}
        start_time = time.perf_counter()
        logger.info("Executing logical filtering retrieval")

        constraints = await self.extract_constraints(query)
        database_query = self.build_database_query(constraints, context)

        try:
            records = await self.document_store.query(database_query)
        except RetrievalError as e:
            raise BackendFailure(e.message, component=self.component, query=query) from e
        except Exception as e:
            logger.error(f"Logical filtering failed: {e}")
            raise BackendFailure(f"Logical filtering failed: {e}", component=self.component, query=query) from e

        return AgentResult(
            documents=self.format_logical_results(records, constraints),
            strategy=self.strategy,
            latency=timedelta(seconds=time.perf_counter() - start_time),
            confidence=self.calculate_logical_confidence(constraints, records),
            metadata={
                "constraints": constraints.model_dump(by_alias=True),
                "query": database_query.to_dict(),
                "result_count": len(records)
            }
        )

    async def extract_constraints(self, query: str) -> ConstraintResponse:
        """Oracle constraint extraction with a regex fallback."""
        prompt = f"""Extract logical constraints and filters from this query:

Query: "{query}"

Return JSON with:
- attributes: key-value pairs for filtering
- temporalConstraints: date/time ranges
- categoricalFilters: category-based filters
- numericalRanges: number ranges
- requiredFields: fields that must be present

Example:
{{
  "attributes": {{"status": "completed", "type": "research"}},
  "temporalConstraints": {{"startDate": "2023-01-01", "endDate": "2023-12-31"}},
  "categoricalFilters": ["machine-learning", "nlp"],
  "numericalRanges": {{"confidence": {{"min": 0.8}}}},
  "requiredFields": ["author", "publication_date"]
}}"""

        try:
            return await self.llm_manager.generate_structured(
                prompt,
                ConstraintResponse,
                component=self.component,
                query=query,
                temperature=self.temperature,
                max_tokens=self.max_tokens
            )
        except OracleFailure as e:
            logger.warning(f"Constraint extraction failed: {e}, using regex fallback")
            return self.fallback_constraint_extraction(query)

    @staticmethod
    def fallback_constraint_extraction(query: str) -> ConstraintResponse:
        """Dates and numbers found by regular expressions."""
        constraints = ConstraintResponse()

        dates = DATE_PATTERN.findall(query)
        if dates:
            constraints.temporal_constraints = TemporalConstraints(dates=dates)

        numbers = NUMBER_PATTERN.findall(query)
        if numbers:
            constraints.numerical_ranges = {"values": [float(n) for n in numbers]}

        return constraints

    def build_database_query(self, constraints: ConstraintResponse, context: Dict[str, Any]) -> FilterQuery:
        selector: Dict[str, Any] = dict(constraints.attributes)

        timestamp_filter = self._build_timestamp_filter(constraints.temporal_constraints)
        if timestamp_filter:
            selector["timestamp"] = timestamp_filter

        for field_name, numeric in constraints.numerical_ranges.items():
            if isinstance(numeric, NumericRange):
                bounds = {}
                if numeric.min is not None:
                    bounds["$gte"] = numeric.min
                if numeric.max is not None:
                    bounds["$lte"] = numeric.max
                if bounds:
                    selector[field_name] = bounds

        if context.get("domain"):
            selector["domain"] = context["domain"]

        return FilterQuery(
            selector=selector,
            fields=list(constraints.required_fields),
            categories=list(constraints.categorical_filters),
            sort=[{"timestamp": "desc"}],
            limit=self.RESULT_LIMIT
        )

    @staticmethod
    def _build_timestamp_filter(temporal: TemporalConstraints) -> Optional[Dict[str, str]]:
        bounds = {}
        if temporal.start_date:
            bounds["$gte"] = temporal.start_date
        if temporal.end_date:
            bounds["$lte"] = temporal.end_date
        return bounds or None

    def format_logical_results(self, records: List[BackendRecord], constraints: ConstraintResponse) -> List[Document]:
        constraint_match = self.calculate_constraint_match(constraints)
        return [
            Document(
                id=record.id,
                content=record.content,
                score=record.score,
                metadata={
                    **record.metadata,
                    "constraint_match": constraint_match,
                    "filtering_method": "logical_attributes"
                },
                source=self.strategy
            )
            for record in records
        ]

    @staticmethod
    def calculate_constraint_match(constraints: ConstraintResponse) -> Dict[str, Any]:
        match_score = 0.8
        matched_constraints = []

        if constraints.attributes:
            matched_constraints.append("attributes")
            match_score += 0.1
        if constraints.temporal_constraints.model_dump(exclude_defaults=True):
            matched_constraints.append("temporal")
            match_score += 0.05
        if constraints.categorical_filters:
            matched_constraints.append("categorical")
            match_score += 0.05

        return {"score": min(match_score, 1.0), "matched_constraints": matched_constraints}

    @staticmethod
    def calculate_logical_confidence(constraints: ConstraintResponse, records: List[BackendRecord]) -> float:
        if not records:
            return 0.1

        confidence = 0.6
        constraint_count = constraints.constraint_count()
        if constraint_count > 0:
            confidence += min(constraint_count * 0.1, 0.3)
        if len(records) >= 2:
            confidence += 0.1

        return min(confidence, 1.0)
