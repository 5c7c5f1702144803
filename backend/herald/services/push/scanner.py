"""
Cursor pagination over a document store collection.
"""

import logging
from typing import AsyncIterator, List, Optional

from herald.services.push.constants import SCAN_PAGE_SIZE
from herald.services.push.document_store import Document, DocumentStore, Page
from herald.services.push.models import Condition

logger = logging.getLogger(__name__)


class PaginatedScanner:
    """
    Iterates a filtered collection page by page.

    Each request asks for ``page_size`` documents after the last document of
    the previous page. A page shorter than ``page_size`` (including an empty
    one) ends the scan. A scanner can be iterated once; create a new one to
    start over.

    Usage:
        scanner = PaginatedScanner(store, "users", filters)
        async for page in scanner.pages():
            ...
    """

    def __init__(
        self,
        store: DocumentStore,
        collection_path: str,
        filters: Optional[List[Condition]] = None,
        page_size: int = SCAN_PAGE_SIZE,
    ):
        if page_size < 1:
            raise ValueError("page_size must be positive")
        self._store = store
        self._collection_path = collection_path
        self._filters = list(filters or [])
        self._page_size = page_size
        self._started = False
        self.pages_read = 0
        self.documents_read = 0

    @property
    def page_size(self) -> int:
        return self._page_size

    async def pages(self) -> AsyncIterator[Page]:
        """Yield pages lazily until a short page is returned."""
        if self._started:
            raise RuntimeError("PaginatedScanner cannot be restarted; create a new scanner")
        self._started = True

        cursor: Optional[Document] = None
        while True:
            page = await self._store.scan(
                self._collection_path,
                self._filters,
                self._page_size,
                cursor,
            )
            self.pages_read += 1
            self.documents_read += len(page)
            logger.debug(
                "Collection page scanned",
                extra={
                    "collection_path": self._collection_path,
                    "page": self.pages_read,
                    "documents": len(page),
                }
            )
            yield page

            if len(page) < self._page_size:
                break
            cursor = page.last

    async def scan(self) -> AsyncIterator[Document]:
        """Yield documents lazily across all pages."""
        async for page in self.pages():
            for document in page.documents:
                yield document
