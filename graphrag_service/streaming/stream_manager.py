"""
Streaming Response Manager: a query run as an ordered sequence of events.
"""

import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional

from ..errors import RetrievalError
from ..orchestration.retrieval_orchestrator import RetrievalOrchestrator

logger = logging.getLogger(__name__)

EVENT_TYPES = ("analysis", "strategy", "progress", "result", "error")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class StreamEvent:
    """One unit of incremental progress or result information."""
    type: str
    content: str
    stream_id: str
    timestamp: str = field(default_factory=_now)
    data: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if self.type not in EVENT_TYPES:
            raise ValueError(f"Unknown stream event type: {self.type}")

    def to_dict(self) -> Dict[str, Any]:
        event = {
            "type": self.type,
            "content": self.content,
            "stream_id": self.stream_id,
            "timestamp": self.timestamp,
        }
        if self.data is not None:
            event["data"] = self.data
        return event

    def to_json(self) -> str:
        """One NDJSON line."""
        return json.dumps(self.to_dict(), default=str)


class ResponseStream:
    """
    Single-consumer event sequence for one query.

    Iterating it runs the pipeline; it can be iterated only once.
    """

    def __init__(
        self,
        manager: "StreamingResponseManager",
        stream_id: str,
        query: str,
        context: Optional[Dict[str, Any]] = None
    ):
        self.manager = manager
        self.stream_id = stream_id
        self.query = query
        self.context = context or {}
        self._consumed = False

    def __aiter__(self) -> AsyncIterator[StreamEvent]:
        if self._consumed:
            raise RuntimeError(f"Stream {self.stream_id} has already been consumed")
        self._consumed = True
        return self.manager._run_stream(self)

    async def collect(self) -> List[StreamEvent]:
        return [event async for event in self]


class StreamingResponseManager:
    """Creates event streams over the orchestrator and tracks the active ones."""

    def __init__(self, orchestrator: RetrievalOrchestrator):
        self.orchestrator = orchestrator
        self.active_streams: Dict[str, str] = {}  # stream_id -> start timestamp

    def create_stream(self, query: str, context: Optional[Dict[str, Any]] = None) -> ResponseStream:
        """
        Create a stream for a query; it becomes active once iterated.

        Args:
            query: The user's natural language query
            context: Optional request context

        Returns:
            ResponseStream to be consumed with ``async for``
        """
        stream_id = f"stream_{uuid.uuid4().hex}"
        logger.info(f"Created stream {stream_id}")
        return ResponseStream(self, stream_id, query, context)

    async def _run_stream(self, stream: ResponseStream) -> AsyncIterator[StreamEvent]:
        sid = stream.stream_id
        query = stream.query
        orchestrator = self.orchestrator
        start_time = time.perf_counter()

        # Active from the first iteration until the finally below
        self.active_streams[sid] = _now()
        logger.info(f"Opened stream {sid}")

        try:
            analysis = await orchestrator.analyze(query)
            yield StreamEvent(
                "analysis", f'Analyzed query: "{query}"', sid, data=analysis.to_dict()
            )

            strategy = orchestrator.select_strategy(analysis)
            yield StreamEvent("strategy", f"Selected strategy: {strategy.value}", sid)

            outcome = await orchestrator.execute_retrieval(strategy, query, analysis, stream.context)
            for result in outcome.agent_results:
                yield StreamEvent(
                    "progress",
                    f"{result.strategy} retrieval returned {len(result.documents)} documents "
                    f"(confidence {result.confidence * 100:.1f}%)",
                    sid
                )
            if outcome.fused is not None:
                yield StreamEvent(
                    "progress",
                    f"Fused {len(outcome.fused.documents)} documents using {outcome.fused.fusion_method}",
                    sid
                )

            answer = await orchestrator.synthesize(outcome, query)
            yield StreamEvent(
                "progress", f"Synthesized answer from {len(outcome.documents)} documents", sid
            )

            response = orchestrator.finalize(query, analysis, outcome, answer, start_time)
            yield StreamEvent("result", answer.answer, sid, data=response.to_dict())

        except RetrievalError as e:
            logger.error(f"Stream {sid} failed: {e}")
            yield StreamEvent("error", f"Stream processing error: {e.message}", sid, data=e.to_dict())
        except Exception as e:
            logger.error(f"Stream {sid} failed: {e}")
            yield StreamEvent("error", f"Stream processing error: {e}", sid)
        finally:
            self.active_streams.pop(sid, None)
            logger.info(f"Closed stream {sid}")

    def get_active_streams(self) -> List[str]:
        return list(self.active_streams.keys())

    def is_active(self, stream_id: str) -> bool:
        return stream_id in self.active_streams

    def cancel_stream(self, stream_id: str) -> bool:
        """
        Mark a stream as no longer active.

        Advisory only: an in-flight stream keeps emitting until it finishes.
        """
        if stream_id in self.active_streams:
            del self.active_streams[stream_id]
            logger.info(f"Cancelled stream {stream_id}")
            return True
        return False
