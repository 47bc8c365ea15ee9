"""
Document store abstraction for entitlement state.

Handlers talk to a DocumentStore rather than a Firestore client so the
webhook reconciler, checkout opener and verifier can run against the
in-memory implementation in tests and local development.

The one primitive with a hard guarantee is batch(): every write queued on a
WriteBatch commits together or none of them do.
"""
from __future__ import annotations

import copy
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Protocol, Sequence, Tuple

from aichef.core.errors import StoreError


Filter = Tuple[str, Any]


class DocumentNotFoundError(StoreError):
    """update() targeted a document that does not exist."""
    code = "document_not_found"
    status_code = 404


@dataclass
class Document:
    id: str
    data: Dict[str, Any] = field(default_factory=dict)


class WriteBatch(Protocol):
    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        ...

    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        ...

    def commit(self) -> None:
        """Apply every queued write atomically.

        Raises:
            DocumentNotFoundError: an update() target is missing (nothing applied)
            StoreError: the store rejected the commit (nothing applied)
        """
        ...


class DocumentStore(Protocol):
    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        ...

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        ...

    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        ...

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        """Create a document with a generated id and return the id."""
        ...

    def find(self, collection: str, filters: Sequence[Filter], limit: Optional[int] = None) -> List[Document]:
        """Equality query: every (field, value) pair must match."""
        ...

    def stream(self, collection: str) -> Iterator[Document]:
        ...

    def batch(self) -> WriteBatch:
        ...

    def ping(self) -> bool:
        ...


class InMemoryWriteBatch:
    def __init__(self, store: "InMemoryDocumentStore"):
        self._store = store
        self._ops: List[Tuple[str, str, str, Dict[str, Any], bool]] = []
        self._committed = False

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        self._ops.append(("set", collection, doc_id, copy.deepcopy(data), merge))

    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self._ops.append(("update", collection, doc_id, copy.deepcopy(data), True))

    def commit(self) -> None:
        if self._committed:
            raise StoreError("Batch already committed")
        self._store._apply_batch(self._ops)
        self._committed = True


class InMemoryDocumentStore:
    """Thread-safe dict-backed DocumentStore.

    `write_count` counts applied document writes so tests can assert that a
    code path performed none.
    """

    def __init__(self, initial: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None):
        self._lock = threading.Lock()
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = copy.deepcopy(initial or {})
        self.write_count = 0

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        with self._lock:
            data = self._collections.get(collection, {}).get(doc_id)
            if data is None:
                return None
            return Document(id=doc_id, data=copy.deepcopy(data))

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        self._apply_batch([("set", collection, doc_id, copy.deepcopy(data), merge)])

    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self._apply_batch([("update", collection, doc_id, copy.deepcopy(data), True)])

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex[:20]
        self.set(collection, doc_id, data)
        return doc_id

    def find(self, collection: str, filters: Sequence[Filter], limit: Optional[int] = None) -> List[Document]:
        results: List[Document] = []
        with self._lock:
            for doc_id, data in self._collections.get(collection, {}).items():
                if all(f in data and data[f] == value for f, value in filters):
                    results.append(Document(id=doc_id, data=copy.deepcopy(data)))
                    if limit is not None and len(results) >= limit:
                        break
        return results

    def stream(self, collection: str) -> Iterator[Document]:
        with self._lock:
            snapshot = copy.deepcopy(self._collections.get(collection, {}))
        for doc_id, data in snapshot.items():
            yield Document(id=doc_id, data=data)

    def batch(self) -> InMemoryWriteBatch:
        return InMemoryWriteBatch(self)

    def ping(self) -> bool:
        return True

    def _apply_batch(self, ops) -> None:
        with self._lock:
            for kind, collection, doc_id, _data, _merge in ops:
                if kind == "update" and doc_id not in self._collections.get(collection, {}):
                    raise DocumentNotFoundError(f"No document to update: {collection}/{doc_id}")

            for kind, collection, doc_id, data, merge in ops:
                docs = self._collections.setdefault(collection, {})
                if kind == "set" and not merge:
                    docs[doc_id] = data
                else:
                    docs.setdefault(doc_id, {}).update(data)
                self.write_count += 1
