"""
Error kinds raised by the retrieval core.

Every propagated error names the component it came from and the query being
processed so the caller can decide between retrying and aborting.
"""

from typing import Any, Dict, Optional


class RetrievalError(Exception):
    """Base class for all retrieval-core failures."""

    kind = "retrieval_error"

    def __init__(self, message: str, component: str = "unknown", query: Optional[str] = None) -> None:
        self.message = message
        self.component = component
        self.query = query
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.component}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "component": self.component,
            "query": self.query,
        }


class OracleFailure(RetrievalError):
    """Reasoning oracle call failed or returned content that did not validate."""

    kind = "oracle_failure"


class BackendFailure(RetrievalError):
    """An underlying vector, graph or document store call failed."""

    kind = "backend_failure"


class ValidationFailure(RetrievalError):
    """A generated query contains a disallowed destructive operation."""

    kind = "validation_failure"

    def __init__(
        self,
        message: str,
        component: str = "unknown",
        query: Optional[str] = None,
        pattern: Optional[str] = None,
    ) -> None:
        super().__init__(message, component=component, query=query)
        self.pattern = pattern

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["pattern"] = self.pattern
        return data


class UnknownStrategy(RetrievalError):
    """Strategy selection produced a value with no mapped executor."""

    kind = "unknown_strategy"
