"""
Document store interface used for target resolution.

The engine only reads documents: single documents by path, and pages of a
collection after a cursor. Stores are injected into the resolver, so several
stores (or tenants) can be served by one process.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from herald.services.push.conditions import ConditionEvaluator
from herald.services.push.models import Condition

logger = logging.getLogger(__name__)


def split_path(path: str) -> List[str]:
    """Split a slash separated document or collection path."""
    return [part for part in path.strip("/").split("/") if part]


@dataclass(frozen=True)
class DocumentReference:
    """Pointer to another document, as stored inside document data."""

    path: str

    @property
    def id(self) -> str:
        parts = split_path(self.path)
        return parts[-1] if parts else ""


@dataclass
class Document:
    """A document read from a store.

    Attributes:
        id: Document ID (last path segment)
        path: Full document path
        data: Document fields
        source: Backend-specific handle (e.g. a Firestore snapshot) used as cursor
    """

    id: str
    path: str
    data: Dict[str, Any] = field(default_factory=dict)
    source: Any = field(default=None, repr=False, compare=False)


@dataclass
class Page:
    """One page of a collection scan."""

    documents: List[Document] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.documents)

    @property
    def last(self) -> Optional[Document]:
        return self.documents[-1] if self.documents else None


class DocumentStore(ABC):
    """Read-only document store."""

    @abstractmethod
    async def get(self, path: str) -> Optional[Document]:
        """Load one document; None when it does not exist."""

    @abstractmethod
    async def scan(
        self,
        collection_path: str,
        filters: Optional[List[Condition]],
        page_size: int,
        cursor: Optional[Document] = None,
    ) -> Page:
        """
        Load up to ``page_size`` documents of a collection ordered by ID.

        Args:
            collection_path: Collection to read
            filters: Conditions the store may apply server side
            page_size: Maximum documents to return
            cursor: Last document of the previous page; results start after it
        """


class InMemoryDocumentStore(DocumentStore):
    """
    Dictionary backed document store.

    Documents are keyed by full path (``users/alice``). A collection contains
    the documents whose parent path equals the collection path.

    Usage:
        store = InMemoryDocumentStore({
            "users/alice": {"tokens": ["t1"]},
            "users/bob": {"tokens": "t2"},
        })
    """

    def __init__(
        self,
        documents: Optional[Dict[str, Dict[str, Any]]] = None,
        evaluator: Optional[ConditionEvaluator] = None,
    ):
        self._documents: Dict[str, Dict[str, Any]] = {}
        self._evaluator = evaluator or ConditionEvaluator()
        for path, data in (documents or {}).items():
            self.set(path, data)

    def set(self, path: str, data: Dict[str, Any]) -> None:
        parts = split_path(path)
        if not parts or len(parts) % 2 != 0:
            raise ValueError(f"Not a document path: {path!r}")
        self._documents["/".join(parts)] = dict(data)

    def delete(self, path: str) -> None:
        self._documents.pop("/".join(split_path(path)), None)

    def _document(self, path: str) -> Document:
        return Document(id=split_path(path)[-1], path=path, data=dict(self._documents[path]))

    def _children(self, collection_path: str) -> Iterable[str]:
        parent = split_path(collection_path)
        for path in self._documents:
            parts = split_path(path)
            if parts[:-1] == parent:
                yield path

    async def get(self, path: str) -> Optional[Document]:
        key = "/".join(split_path(path))
        if key not in self._documents:
            return None
        return self._document(key)

    async def scan(
        self,
        collection_path: str,
        filters: Optional[List[Condition]],
        page_size: int,
        cursor: Optional[Document] = None,
    ) -> Page:
        if page_size < 1:
            raise ValueError("page_size must be positive")

        documents = sorted(
            (self._document(path) for path in self._children(collection_path)),
            key=lambda doc: doc.id,
        )
        if cursor is not None:
            documents = [doc for doc in documents if doc.id > cursor.id]
        pushed = [condition for condition in filters or [] if condition.store_filterable]
        documents = [doc for doc in documents if self._evaluator.matches(doc.data, pushed)]
        return Page(documents=documents[:page_size])
