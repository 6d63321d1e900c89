"""
Document Store for attribute-filtered retrieval, persisted as JSON.
"""

import asyncio
import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..errors import BackendFailure
from .models import BackendRecord, FilterQuery

logger = logging.getLogger(__name__)


@dataclass
class StoredDocument:
    """A document with filterable metadata."""
    id: str
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)


def _compare(value: Any, operator: str, operand: Any) -> bool:
    if operator == "$in":
        return value in operand
    if operator == "$ne":
        return value != operand
    if value is None:
        return False
    try:
        if operator == "$gte":
            return value >= operand
        if operator == "$lte":
            return value <= operand
        if operator == "$gt":
            return value > operand
        if operator == "$lt":
            return value < operand
    except TypeError:
        return False
    raise ValueError(f"Unsupported selector operator: {operator}")


def _sort_key(value: Any):
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (0, value, "")
    return (1, 0, str(value))


def matches_selector(metadata: Dict[str, Any], selector: Dict[str, Any]) -> bool:
    """Equality or operator match ($gte/$lte/$gt/$lt/$in/$ne) on every selector key."""
    for key, condition in selector.items():
        if condition is None:
            continue
        value = metadata.get(key)
        if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
            if not all(_compare(value, op, operand) for op, operand in condition.items()):
                return False
        elif isinstance(value, list) and not isinstance(condition, list):
            if condition not in value:
                return False
        elif value != condition:
            return False
    return True


class DocumentStore:
    """Persistent storage for attribute-filterable documents."""

    FILTER_MATCH_SCORE = 0.9
    CATEGORY_BASE_SCORE = 0.6

    def __init__(self, storage_path: Path):
        self.storage_path = Path(storage_path)
        self.storage_path.mkdir(parents=True, exist_ok=True)
        self.documents_file = self.storage_path / "documents.json"

        self.documents: List[StoredDocument] = []
        self.document_index: Dict[str, int] = {}  # id -> index mapping

        self._load_documents()

    def _load_documents(self):
        """Load documents from persistent storage."""
        if not self.documents_file.exists():
            logger.info("No existing documents found, starting with empty store")
            return

        try:
            with open(self.documents_file, 'r') as f:
                documents_data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load documents: {e}")
            raise BackendFailure(f"Document store is unreadable: {e}", component="document_store") from e

        for document_data in documents_data:
            document = StoredDocument(
                id=document_data["id"],
                content=document_data["content"],
                metadata=document_data.get("metadata", {})
            )
            self.documents.append(document)
            self.document_index[document.id] = len(self.documents) - 1

        logger.info(f"Loaded {len(self.documents)} documents from storage")

    def _save_documents(self):
        """Save documents to persistent storage."""
        try:
            with open(self.documents_file, 'w') as f:
                json.dump([asdict(d) for d in self.documents], f, indent=2, default=str)
            logger.debug(f"Saved {len(self.documents)} documents to storage")
        except OSError as e:
            logger.error(f"Failed to save documents: {e}")
            raise BackendFailure(f"Document store write failed: {e}", component="document_store") from e

    def add_document(self, document: StoredDocument):
        """Add or replace a document."""
        document.metadata.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
        if document.id in self.document_index:
            logger.warning(f"Document with id {document.id} already exists, updating")
            self.documents[self.document_index[document.id]] = document
        else:
            self.documents.append(document)
            self.document_index[document.id] = len(self.documents) - 1

        self._save_documents()

    def get_document(self, document_id: str) -> Optional[StoredDocument]:
        """Get a document by ID."""
        if document_id in self.document_index:
            return self.documents[self.document_index[document_id]]
        return None

    def get_all_documents(self) -> List[StoredDocument]:
        return self.documents.copy()

    def delete_document(self, document_id: str) -> bool:
        """Delete a document by ID."""
        if document_id not in self.document_index:
            return False

        del self.documents[self.document_index[document_id]]
        self.document_index = {d.id: i for i, d in enumerate(self.documents)}
        self._save_documents()
        return True

    async def query(self, request: FilterQuery) -> List[BackendRecord]:
        """
        Filter documents by selector, required fields and categories.

        Args:
            request: Filter query built from extracted constraints

        Returns:
            Matching records, sorted and limited as requested
        """
        return await asyncio.to_thread(self._query_sync, request)

    def _query_sync(self, request: FilterQuery) -> List[BackendRecord]:
        matches = []
        for document in self.documents:
            metadata = document.metadata
            if not matches_selector(metadata, request.selector):
                continue
            if any(f not in metadata for f in request.fields):
                continue
            matches.append((document, self._category_score(metadata, request.categories)))

        for sort_spec in reversed(request.sort):
            for sort_field, direction in sort_spec.items():
                present = [m for m in matches if m[0].metadata.get(sort_field) is not None]
                missing = [m for m in matches if m[0].metadata.get(sort_field) is None]
                present.sort(key=lambda m: _sort_key(m[0].metadata[sort_field]), reverse=direction == "desc")
                matches = present + missing

        return [
            BackendRecord(
                id=document.id,
                content=document.content,
                score=score,
                metadata=dict(document.metadata)
            )
            for document, score in matches[:request.limit]
        ]

    def _category_score(self, metadata: Dict[str, Any], categories: List[str]) -> float:
        """Soft score from overlap between requested categories and document tags."""
        if not categories:
            return self.FILTER_MATCH_SCORE
        tags = metadata.get("categories") or metadata.get("tags") or []
        if isinstance(tags, str):
            tags = [tags]
        tags = {str(t).lower() for t in tags}
        overlap = sum(1 for c in categories if c.lower() in tags)
        return self.CATEGORY_BASE_SCORE + (1.0 - self.CATEGORY_BASE_SCORE) * overlap / len(categories)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "total_documents": len(self.documents),
            "storage_path": str(self.storage_path),
        }
