"""
Target resolution: turns a target specification into device tokens.

- TokenTarget: normalize, deduplicate, split into batches of at most 500
- TopicTarget: passed through unchanged
- CollectionTarget: scan pages of 500 documents, keep documents matching the
  filters and conditions, read the token field; one token list per page
- DocumentTarget: load one document, check conditions, read the token field;
  a document that is missing or fails its conditions yields no page

Conditions on a field holding a document reference may carry nested
conditions, which are checked against the referenced document.

Resolution problems (missing document, missing field, unreadable reference,
store errors) are logged and yield no tokens. They never fail the request.
"""

import logging
from typing import Any, AsyncIterator, Iterable, List, Mapping, Optional, Set

from herald.core.metrics import record_document_scanned
from herald.services.push.conditions import ConditionEvaluator, log_unmet
from herald.services.push.constants import MAX_BATCH_SIZE, SCAN_PAGE_SIZE
from herald.services.push.document_store import DocumentReference, DocumentStore
from herald.services.push.fields import FieldAccessor, field_accessor
from herald.services.push.models import (
    CollectionTarget,
    Condition,
    DocumentTarget,
    TokenField,
    TokenFieldReference,
    TokenTarget,
    TopicTarget,
    flatten,
    normalize_tokens,
)
from herald.services.push.scanner import PaginatedScanner

logger = logging.getLogger(__name__)

# Reference hops followed before giving up on a token field or condition
MAX_REFERENCE_DEPTH = 8


def partition(tokens: List[str], size: int = MAX_BATCH_SIZE) -> List[List[str]]:
    """Split tokens into consecutive batches of at most ``size``."""
    if size < 1:
        raise ValueError("Batch size must be positive")
    return [tokens[i:i + size] for i in range(0, len(tokens), size)]


class TokenDeduplicator:
    """
    Remembers every token handed out during one request.

    ``add`` returns only tokens not seen before, in first-seen order.
    """

    def __init__(self) -> None:
        self._seen: Set[str] = set()

    def add(self, tokens: Iterable[str]) -> List[str]:
        fresh: List[str] = []
        for token in tokens:
            if token in self._seen:
                continue
            self._seen.add(token)
            fresh.append(token)
        return fresh

    def __len__(self) -> int:
        return len(self._seen)

    def __contains__(self, token: object) -> bool:
        return token in self._seen


class TargetResolver:
    """
    Resolves target specifications against an injected document store.

    Usage:
        resolver = TargetResolver(store)
        async for tokens in resolver.iter_token_pages(collection_target):
            ...
    """

    def __init__(
        self,
        store: Optional[DocumentStore] = None,
        evaluator: Optional[ConditionEvaluator] = None,
        accessor: Optional[FieldAccessor] = None,
        page_size: int = SCAN_PAGE_SIZE,
        batch_size: int = MAX_BATCH_SIZE,
    ):
        if batch_size < 1 or batch_size > MAX_BATCH_SIZE:
            raise ValueError(f"batch_size must be between 1 and {MAX_BATCH_SIZE}")
        self._store = store
        self._accessor = accessor or field_accessor
        self._evaluator = evaluator or ConditionEvaluator(self._accessor)
        self._page_size = page_size
        self._batch_size = batch_size

    @property
    def batch_size(self) -> int:
        return self._batch_size

    # ------------------------------------------------------------------
    # Token and topic targets
    # ------------------------------------------------------------------

    def token_list(self, raw: Any) -> List[str]:
        """Normalize any legal token shape into a flat list (may contain duplicates)."""
        return flatten(normalize_tokens(raw))

    def batches(self, tokens: Iterable[str], seen: Optional[TokenDeduplicator] = None) -> List[List[str]]:
        """Deduplicate tokens (against ``seen`` when given) and split them into batches."""
        dedup = seen if seen is not None else TokenDeduplicator()
        return partition(dedup.add(tokens), self._batch_size)

    def resolve_tokens(self, target: TokenTarget, seen: Optional[TokenDeduplicator] = None) -> List[List[str]]:
        """Resolve a TokenTarget into batches of unique tokens."""
        return self.batches(self.token_list(target.tokens), seen)

    def resolve_topic(self, target: TopicTarget) -> str:
        return target.topic

    # ------------------------------------------------------------------
    # Token field extraction
    # ------------------------------------------------------------------

    async def extract_tokens(
        self,
        data: Optional[Mapping[str, Any]],
        token_field: TokenField,
        depth: int = 0,
    ) -> List[str]:
        """
        Read and normalize the token field of a document.

        ``token_field`` may hop through document references; each hop loads
        the referenced document from the store.

        Returns:
            Tokens found (empty when the field is missing or not a token shape)
        """
        if data is None:
            return []

        if isinstance(token_field, str):
            raw = self._accessor.get(data, token_field)
            if raw is None:
                logger.debug("Token field missing", extra={"token_field": token_field})
            return self.token_list(raw)

        if depth >= MAX_REFERENCE_DEPTH:
            logger.warning(
                "Token field reference chain too deep",
                extra={"max_depth": MAX_REFERENCE_DEPTH},
            )
            return []

        source = self._accessor.get(data, token_field.key)
        if isinstance(source, DocumentReference):
            referenced = await self._load(source.path)
            if referenced is None:
                return []
            return await self.extract_tokens(referenced, token_field.value, depth + 1)
        if isinstance(source, Mapping):
            return await self.extract_tokens(source, token_field.value, depth + 1)
        return self.token_list(source)

    async def _load(self, path: str) -> Optional[Mapping[str, Any]]:
        if self._store is None:
            logger.warning("No document store configured", extra={"path": path})
            return None
        try:
            document = await self._store.get(path)
        except Exception as e:
            logger.error(
                f"Failed to load document {path}: {e}",
                extra={"path": path, "error_type": type(e).__name__},
                exc_info=True,
            )
            return None
        if document is None:
            logger.info("Target document not found", extra={"path": path})
            return None
        return document.data

    # ------------------------------------------------------------------
    # Condition matching
    # ------------------------------------------------------------------

    async def matches(
        self,
        data: Optional[Mapping[str, Any]],
        conditions: Optional[Iterable[Condition]],
        depth: int = 0,
    ) -> bool:
        """
        Check every condition, following document references.

        A condition whose field holds a DocumentReference and whose value
        holds nested conditions is checked against the referenced document.
        Everything else goes through the ConditionEvaluator.
        """
        if not conditions:
            return True

        document = data or {}
        for condition in conditions:
            if not await self._holds(document, condition, depth):
                log_unmet(condition)
                return False
        return True

    async def _holds(self, data: Mapping[str, Any], condition: Condition, depth: int) -> bool:
        nested = condition.nested_conditions()
        if nested is not None:
            source = self._accessor.get(data, condition.field_path)
            if isinstance(source, DocumentReference):
                if depth >= MAX_REFERENCE_DEPTH:
                    logger.warning(
                        "Condition reference chain too deep",
                        extra={"max_depth": MAX_REFERENCE_DEPTH, "path": source.path},
                    )
                    return False
                referenced = await self._load(source.path)
                if referenced is None:
                    return False
                return await self.matches(referenced, nested, depth + 1)
        return self._evaluator.evaluate(data, condition)

    # ------------------------------------------------------------------
    # Collection and document targets
    # ------------------------------------------------------------------

    async def resolve_collection(
        self,
        target: CollectionTarget,
        log_level: int = logging.DEBUG,
    ) -> AsyncIterator[List[str]]:
        """
        Yield the tokens found on each scanned page of a collection.

        Exactly one list is yielded per page, including a final short or
        empty page. Lists are not deduplicated.
        """
        if self._store is None:
            logger.warning("No document store configured", extra={"path": target.path})
            return

        scanner = PaginatedScanner(self._store, target.path, target.filters, self._page_size)
        conditions = list(target.filters) + list(target.conditions)
        pages = scanner.pages()
        while True:
            try:
                page = await pages.__anext__()
            except StopAsyncIteration:
                break
            except Exception as e:
                logger.error(
                    f"Collection scan failed for {target.path}: {e}",
                    extra={"path": target.path, "pages_read": scanner.pages_read},
                    exc_info=True,
                )
                break

            tokens: List[str] = []
            for document in page.documents:
                logger.log(log_level, "Scanning document", extra={"path": document.path})
                matched = await self.matches(document.data, conditions)
                record_document_scanned("collection", matched)
                if not matched:
                    continue
                tokens.extend(await self.extract_tokens(document.data, target.token_field))
            yield tokens

    async def resolve_document(
        self,
        target: DocumentTarget,
        log_level: int = logging.DEBUG,
    ) -> Optional[List[str]]:
        """
        Return the tokens of a single document.

        Returns:
            Token list (possibly empty), or None when the document is missing
            or fails its conditions
        """
        data = await self._load(target.path)
        if data is None:
            return None

        logger.log(log_level, "Scanning document", extra={"path": target.path})
        matched = await self.matches(data, target.conditions)
        record_document_scanned("document", matched)
        if not matched:
            return None
        return await self.extract_tokens(data, target.token_field)

    async def iter_token_pages(
        self,
        target: Any,
        log_level: int = logging.DEBUG,
    ) -> AsyncIterator[List[str]]:
        """Uniform page iteration over collection and document targets."""
        if isinstance(target, CollectionTarget):
            async for tokens in self.resolve_collection(target, log_level):
                yield tokens
        elif isinstance(target, DocumentTarget):
            tokens = await self.resolve_document(target, log_level)
            if tokens is not None:
                yield tokens
        else:
            raise TypeError(f"Not a document-backed target: {type(target).__name__}")
