from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Generic, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel

from core.utils.exceptions import ConcurrentUpdateError

ModelT = TypeVar("ModelT", bound=BaseModel)

# Receives the current record (None when absent) and returns the record to
# write, or None to leave the document untouched.
Mutation = Callable[[Optional[ModelT]], Optional[ModelT]]


class RecordStore(ABC, Generic[ModelT]):
    """Keyed document store, typed by the record model it holds.

    Documents are addressed by ``(collection, document_id)``. Records carry
    an integer ``version`` that every write bumps; ``compare_and_swap`` is
    the primitive that makes read-modify-write cycles safe against
    concurrent writers. Transport failures surface as ``StoreError``.
    """

    def __init__(self, model_type: Type[ModelT]):
        self.model_type = model_type

    @abstractmethod
    async def get(self, collection: str, document_id: str) -> Optional[ModelT]:
        ...

    @abstractmethod
    async def create(self, collection: str, document_id: str, record: ModelT) -> None:
        """Insert a new document. Raises RecordExistsError if one is present."""
        ...

    @abstractmethod
    async def update(self, collection: str, document_id: str, partial: Dict[str, Any]) -> None:
        """Shallow-merge fields into an existing document.

        Raises RecordNotFoundError, or ConcurrentUpdateError when writers keep racing it.
        """
        ...

    @abstractmethod
    async def compare_and_swap(self, collection: str, document_id: str,
                               expected_version: Optional[int], record: ModelT) -> bool:
        """Write ``record`` only if the stored version still equals ``expected_version``.

        ``expected_version=None`` means the document must not exist yet.
        The written document gets version ``expected_version + 1`` (1 on create).
        Returns False when another writer got there first.
        """
        ...

    async def update_atomic(self, collection: str, document_id: str, mutate: Mutation,
                            max_attempts: int = 5) -> Tuple[Optional[ModelT], Optional[ModelT]]:
        """Run a read-modify-write cycle guarded by compare-and-swap.

        Retries with a fresh read whenever a concurrent write wins.

        Returns:
            (previous record or None, written record or None when mutate declined)

        Raises:
            ConcurrentUpdateError: if every attempt lost the race
        """
        for _ in range(max_attempts):
            current = await self.get(collection, document_id)
            updated = mutate(current)
            if updated is None:
                return current, None
            expected = _version_of(current)
            if await self.compare_and_swap(collection, document_id, expected, updated):
                return current, updated.model_copy(update={"version": (expected or 0) + 1})
        raise ConcurrentUpdateError(
            f"Gave up updating {collection}/{document_id} after {max_attempts} conflicting attempts",
            collection=collection,
            document_id=document_id,
            attempts=max_attempts,
        )

    # Shared document helpers for concrete stores

    def _load(self, document: Dict[str, Any]) -> ModelT:
        return self.model_type.model_validate(document)

    def _dump(self, record: ModelT, version: int) -> Dict[str, Any]:
        document = record.model_dump(by_alias=True, mode="json", exclude_none=True)
        document["version"] = version
        return document

    def _merge(self, document: Dict[str, Any], partial: Dict[str, Any]) -> Dict[str, Any]:
        """Shallow merge of python-named fields into a stored document, bumping its version."""
        current = self._load(document)
        merged = self.model_type.model_validate({**current.model_dump(), **partial})
        return self._dump(merged, _version_of(current) + 1)


def _version_of(record: Optional[BaseModel]) -> Optional[int]:
    if record is None:
        return None
    return getattr(record, "version", 0)
