from __future__ import annotations

import asyncio
import copy
from typing import Any, Dict, Optional, Tuple, Type

from core.trading.interfaces import ModelT, RecordStore
from core.utils.exceptions import RecordExistsError, RecordNotFoundError


class InMemoryRecordStore(RecordStore[ModelT]):
    """
    Process-local record store holding serialized documents.

    Used for tests, the CLI and single-process deployments. Documents are
    kept in their stored (camelCase, JSON-safe) form so behaviour matches
    the Redis-backed store.
    """

    def __init__(self, model_type: Type[ModelT]):
        super().__init__(model_type)
        self._documents: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def get(self, collection: str, document_id: str) -> Optional[ModelT]:
        document = self._documents.get((collection, document_id))
        if document is None:
            return None
        return self._load(copy.deepcopy(document))

    async def create(self, collection: str, document_id: str, record: ModelT) -> None:
        async with self._lock:
            key = (collection, document_id)
            if key in self._documents:
                raise RecordExistsError(
                    f"Document {collection}/{document_id} already exists",
                    collection=collection, document_id=document_id,
                )
            self._documents[key] = self._dump(record, 1)

    async def update(self, collection: str, document_id: str, partial: Dict[str, Any]) -> None:
        async with self._lock:
            key = (collection, document_id)
            document = self._documents.get(key)
            if document is None:
                raise RecordNotFoundError(
                    f"Document {collection}/{document_id} does not exist",
                    collection=collection, document_id=document_id,
                )
            self._documents[key] = self._merge(document, partial)

    async def compare_and_swap(self, collection: str, document_id: str,
                               expected_version: Optional[int], record: ModelT) -> bool:
        async with self._lock:
            key = (collection, document_id)
            document = self._documents.get(key)
            if expected_version is None:
                if document is not None:
                    return False
            elif document is None or document.get("version", 0) != expected_version:
                return False
            self._documents[key] = self._dump(record, (expected_version or 0) + 1)
            return True

    def documents(self, collection: Optional[str] = None) -> Dict[str, Dict[str, Any]]:
        """Snapshot of stored documents, optionally limited to one collection."""
        return {
            f"{coll}/{doc_id}": copy.deepcopy(doc)
            for (coll, doc_id), doc in self._documents.items()
            if collection is None or coll == collection
        }
