"""
Retrieval Orchestrator: strategy execution, result fusion, confidence and synthesis.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from ..agents.base import RetrievalAgent
from ..agents.models import AgentResult, Document
from ..errors import OracleFailure, UnknownStrategy
from ..models.llm_manager import LLMManager
from ..router.query_analyzer import QueryAnalysis, QueryAnalyzer
from ..router.query_router import QueryRouter, RetrievalStrategy
from .metrics import MetricsCollector

logger = logging.getLogger(__name__)


@dataclass
class FusedResult:
    """Documents from several agents, re-ranked by weighted score."""
    documents: List[Document]
    fusion_method: str
    strategy_weights: Dict[str, float]


@dataclass
class ReasoningChain:
    """Human-readable trace of how a result was produced."""
    steps: List[str]
    final_decision: str

    def to_dict(self) -> Dict[str, Any]:
        return {"steps": self.steps, "final_decision": self.final_decision}


@dataclass
class RetrievalOutcome:
    """Output of strategy execution, before synthesis."""
    strategy: RetrievalStrategy
    documents: List[Document]
    confidence: float
    agent_results: List[AgentResult]
    reasoning_chain: ReasoningChain
    fused: Optional[FusedResult] = None


@dataclass
class SynthesizedAnswer:
    answer: str
    supporting_documents: List[Document]
    retrieval_metadata: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "answer": self.answer,
            "supporting_documents": [d.to_dict() for d in self.supporting_documents],
            "retrieval_metadata": self.retrieval_metadata,
        }


@dataclass
class QueryResponse:
    """Complete answer envelope for one query."""
    query: str
    query_analysis: QueryAnalysis
    strategy: RetrievalStrategy
    results: SynthesizedAnswer
    reasoning_chain: ReasoningChain
    latency_ms: float = 0.0
    fusion: Optional[Dict[str, Any]] = field(default=None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query": self.query,
            "query_analysis": self.query_analysis.to_dict(),
            "strategy": self.strategy.value,
            "results": self.results.to_dict(),
            "reasoning_chain": self.reasoning_chain.to_dict(),
            "latency_ms": self.latency_ms,
            "fusion": self.fusion,
        }


class RetrievalOrchestrator:
    """
    Runs one query through analysis, strategy selection, retrieval and synthesis.

    The complex strategy fans out to all three agents concurrently and waits
    for every one of them. The first agent failure aborts the query: it is
    re-raised unchanged and the remaining agent tasks are cancelled.
    """

    BASE_WEIGHTS = {"semantic": 0.4, "relational": 0.35, "factual": 0.25}
    CONFIDENCE_WEIGHT_FACTOR = 0.3
    FUSION_TOP_K = 10
    SYNTHESIS_TOP_K = 5

    def __init__(
        self,
        config: Dict[str, Any],
        llm_manager: LLMManager,
        analyzer: QueryAnalyzer,
        agents: Dict[str, RetrievalAgent],
        router: Optional[QueryRouter] = None,
        metrics: Optional[MetricsCollector] = None
    ):
        self.config = config
        self.llm_manager = llm_manager
        self.analyzer = analyzer
        self.agents = agents
        self.router = router or QueryRouter()
        self.metrics = metrics or MetricsCollector()
        self.synthesis_temperature = config.get("synthesis_temperature", 0.2)
        self.synthesis_max_tokens = config.get("synthesis_max_tokens", 1500)

        self.strategy_executors: Dict[RetrievalStrategy, Callable[..., Awaitable[RetrievalOutcome]]] = {
            RetrievalStrategy.COMPLEX: self._execute_hybrid_retrieval,
        }
        for strategy in (RetrievalStrategy.SEMANTIC, RetrievalStrategy.RELATIONAL, RetrievalStrategy.FACTUAL):
            if strategy.value in agents:
                self.strategy_executors[strategy] = self._execute_single_agent

    async def process_query(self, query: str, context: Optional[Dict[str, Any]] = None) -> QueryResponse:
        """
        Answer a query end to end.

        Args:
            query: The user's natural language query
            context: Optional request context (e.g. ``domain``)

        Returns:
            QueryResponse with analysis, strategy, synthesized answer and reasoning chain
        """
        context = context or {}
        start_time = time.perf_counter()
        logger.info(f"Processing query with agentic retrieval: {query}")

        analysis = await self.analyze(query)
        strategy = self.select_strategy(analysis)
        outcome = await self.execute_retrieval(strategy, query, analysis, context)
        answer = await self.synthesize(outcome, query)

        return self.finalize(query, analysis, outcome, answer, start_time)

    def finalize(
        self,
        query: str,
        analysis: QueryAnalysis,
        outcome: RetrievalOutcome,
        answer: SynthesizedAnswer,
        start_time: float
    ) -> QueryResponse:
        """Record metrics and assemble the response envelope."""
        latency_ms = (time.perf_counter() - start_time) * 1000
        self.metrics.record_retrieval(
            query, outcome.strategy.value, latency_ms, outcome.confidence, len(outcome.documents)
        )

        return QueryResponse(
            query=query,
            query_analysis=analysis,
            strategy=outcome.strategy,
            results=answer,
            reasoning_chain=outcome.reasoning_chain,
            latency_ms=latency_ms,
            fusion={
                "fusion_method": outcome.fused.fusion_method,
                "strategy_weights": outcome.fused.strategy_weights,
            } if outcome.fused else None
        )

    async def analyze(self, query: str) -> QueryAnalysis:
        return await self.analyzer.analyze(query)

    def select_strategy(self, analysis: QueryAnalysis) -> RetrievalStrategy:
        return self.router.select_strategy(analysis)

    async def execute_retrieval(
        self,
        strategy: Union[RetrievalStrategy, str],
        query: str,
        analysis: QueryAnalysis,
        context: Optional[Dict[str, Any]] = None
    ) -> RetrievalOutcome:
        """
        Run the executor mapped to a strategy.

        Raises:
            UnknownStrategy: no executor is mapped to the strategy
        """
        if not isinstance(strategy, RetrievalStrategy):
            try:
                strategy = RetrievalStrategy(strategy)
            except ValueError:
                raise UnknownStrategy(
                    f"Unknown retrieval strategy: {strategy}", component="orchestrator", query=query
                ) from None

        executor = self.strategy_executors.get(strategy)
        if executor is None:
            raise UnknownStrategy(
                f"Unknown retrieval strategy: {strategy.value}", component="orchestrator", query=query
            )

        return await executor(strategy, query, analysis, context or {})

    async def _execute_single_agent(
        self,
        strategy: RetrievalStrategy,
        query: str,
        analysis: QueryAnalysis,
        context: Dict[str, Any]
    ) -> RetrievalOutcome:
        result = await self.agents[strategy.value].retrieve(query, analysis, context)
        confidence = self.calculate_confidence(result.documents, analysis)
        logger.info(f"{strategy.value} retrieval returned {len(result.documents)} documents")

        return RetrievalOutcome(
            strategy=strategy,
            documents=result.documents,
            confidence=confidence,
            agent_results=[result],
            reasoning_chain=self.generate_reasoning_chain(query, strategy, result.documents, confidence)
        )

    async def _execute_hybrid_retrieval(
        self,
        strategy: RetrievalStrategy,
        query: str,
        analysis: QueryAnalysis,
        context: Dict[str, Any]
    ) -> RetrievalOutcome:
        logger.info("Executing hybrid retrieval strategy")
        missing = [name for name in self.BASE_WEIGHTS if name not in self.agents]
        if missing:
            raise UnknownStrategy(
                f"Hybrid retrieval requires agents for: {', '.join(missing)}",
                component="orchestrator",
                query=query
            )

        tasks = [
            asyncio.ensure_future(self.agents[name].retrieve(query, analysis, context))
            for name in self.BASE_WEIGHTS
        ]
        try:
            agent_results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.error("Hybrid retrieval aborted: an agent failed")
            raise

        fused = self.fuse_results(list(agent_results))
        confidence = self.calculate_confidence(fused.documents, analysis)
        logger.info(f"Fused {len(fused.documents)} documents with weights {fused.strategy_weights}")

        return RetrievalOutcome(
            strategy=strategy,
            documents=fused.documents,
            confidence=confidence,
            agent_results=list(agent_results),
            reasoning_chain=self.generate_reasoning_chain(query, strategy, fused.documents, confidence),
            fused=fused
        )

    def calculate_strategy_weight(self, result: AgentResult) -> float:
        return self.BASE_WEIGHTS.get(result.strategy, 0.0) + result.confidence * self.CONFIDENCE_WEIGHT_FACTOR

    def fuse_results(self, results: List[AgentResult]) -> FusedResult:
        """
        Weight every document by its agent's weight and re-rank.

        The sort is stable, so equal combined scores keep concatenation order.
        """
        strategy_weights: Dict[str, float] = {}
        combined: List[Document] = []
        for result in results:
            weight = self.calculate_strategy_weight(result)
            strategy_weights[result.strategy] = weight
            combined.extend(doc.with_combined_score(weight, result.strategy) for doc in result.documents)

        combined.sort(key=lambda doc: doc.combined_score, reverse=True)

        return FusedResult(
            documents=combined[:self.FUSION_TOP_K],
            fusion_method="weighted_hybrid",
            strategy_weights=strategy_weights
        )

    def calculate_confidence(self, documents: List[Document], analysis: QueryAnalysis) -> float:
        base_confidence = 0.7 if documents else 0.3
        complexity_penalty = -0.1 if analysis.complexity == "high" else 0.0
        diversity_bonus = self.calculate_diversity_bonus(documents)
        return max(0.0, min(1.0, base_confidence + complexity_penalty + diversity_bonus))

    @staticmethod
    def calculate_diversity_bonus(documents: List[Document]) -> float:
        if len(documents) < 2:
            return 0.0
        sources = {doc.source for doc in documents}
        return (len(sources) - 1) * 0.1

    @staticmethod
    def generate_reasoning_chain(
        query: str,
        strategy: RetrievalStrategy,
        documents: List[Document],
        confidence: float
    ) -> ReasoningChain:
        return ReasoningChain(
            steps=[
                f'Analyzed query: "{query}"',
                f"Selected strategy: {strategy.value}",
                f"Retrieved {len(documents)} documents",
                f"Confidence: {confidence * 100:.1f}%",
            ],
            final_decision=f"Used {strategy.value} retrieval based on query analysis"
        )

    async def synthesize(self, outcome: RetrievalOutcome, query: str) -> SynthesizedAnswer:
        """
        Turn the top-ranked documents into a natural-language answer.

        Raises:
            OracleFailure: the synthesis call failed or returned nothing
        """
        top_documents = [
            {"id": d.id, "content": d.content, "score": d.score, "source": d.source}
            for d in outcome.documents[:self.SYNTHESIS_TOP_K]
        ]
        prompt = f"""Synthesize these retrieved documents into a coherent answer for the query: "{query}"

Retrieved Documents: {json.dumps(top_documents, indent=2, default=str)}

Provide a comprehensive, accurate answer citing relevant sources."""

        try:
            answer = await self.llm_manager.generate(
                prompt,
                temperature=self.synthesis_temperature,
                max_tokens=self.synthesis_max_tokens
            )
        except Exception as e:
            logger.error(f"Answer synthesis failed: {e}")
            raise OracleFailure(f"Answer synthesis failed: {e}", component="orchestrator", query=query) from e

        if not answer or not answer.strip():
            logger.error("Answer synthesis returned an empty completion")
            raise OracleFailure("Answer synthesis returned an empty completion", component="orchestrator", query=query)

        return SynthesizedAnswer(
            answer=answer.strip(),
            supporting_documents=outcome.documents,
            retrieval_metadata={
                "strategy": outcome.strategy.value,
                "confidence": outcome.confidence,
                "document_count": len(outcome.documents),
            }
        )
