"""
Notification engine: validation, target resolution and dispatch.

Flow for one request:
1. Reject requests without a usable target (invalid-argument)
2. Merge the link into the data payload and build the provider payload
3. Resolve the target branch (token, topic, collection, document)
4. Dispatch batches sequentially, or return the resolved tokens/topic when
   only the list was requested
5. Return ``success=True`` with per-batch results and any failed batches

Collection targets are handled as a loop over scanned pages: every page's
new tokens are dispatched before the next page is read. Deduplication spans
the whole request, so a token found on several pages is sent once.
"""

import logging
from typing import Any, Dict, List, Optional

from herald.core.metrics import record_notification_request, record_tokens_resolved
from herald.services.push.batch_dispatcher import BatchDispatcher
from herald.services.push.document_store import DocumentStore
from herald.services.push.models import (
    CollectionTarget,
    DispatchResult,
    DocumentTarget,
    InvalidArgumentError,
    NotificationPayload,
    NotificationRequest,
    NotificationResponse,
    TargetSpecification,
    TokenTarget,
    TopicTarget,
)
from herald.services.push.provider import PushProvider
from herald.services.push.target_resolver import TargetResolver, TokenDeduplicator

logger = logging.getLogger(__name__)

MISSING_TARGET_MESSAGE = (
    "Either [token] or [topic], [targetCollectionPath], [targetDocumentPath] must be specified."
)


def require_target(request: NotificationRequest) -> TargetSpecification:
    """The request's target; raises InvalidArgumentError when there is none."""
    target = request.target
    if target is None:
        raise InvalidArgumentError(MISSING_TARGET_MESSAGE)
    return target


class NotificationEngine:
    """
    Orchestrates TargetResolver and BatchDispatcher for one request at a time.

    The document store and push provider are injected, so one process can
    serve several projects and tests can run against in-memory fakes.

    Usage:
        engine = NotificationEngine.create(store=store, provider=provider)
        response = await engine.send_notification(NotificationRequest(
            title="Hello",
            body="World",
            topic_target=TopicTarget(topic="news"),
        ))
    """

    def __init__(self, resolver: TargetResolver, dispatcher: BatchDispatcher):
        self._resolver = resolver
        self._dispatcher = dispatcher

    @classmethod
    def create(
        cls,
        provider: PushProvider,
        store: Optional[DocumentStore] = None,
        batch_size: Optional[int] = None,
        page_size: Optional[int] = None,
    ) -> "NotificationEngine":
        """Build an engine from a provider and an optional document store."""
        resolver_kwargs: Dict[str, Any] = {}
        if batch_size is not None:
            resolver_kwargs["batch_size"] = batch_size
        if page_size is not None:
            resolver_kwargs["page_size"] = page_size
        return cls(
            resolver=TargetResolver(store, **resolver_kwargs),
            dispatcher=BatchDispatcher(provider),
        )

    @property
    def resolver(self) -> TargetResolver:
        return self._resolver

    @staticmethod
    def build_payload(request: NotificationRequest) -> NotificationPayload:
        """Provider-agnostic payload with the link merged into data."""
        return NotificationPayload(
            title=request.title,
            body=request.body,
            data=request.merged_data(),
            channel_id=request.channel_id,
            badge_count=request.badge_count,
            sound=request.sound,
        )

    async def send_from_payload(self, payload: Dict[str, Any]) -> NotificationResponse:
        """Parse a callable-function payload and send it."""
        return await self.send_notification(NotificationRequest.from_payload(payload))

    async def send_notification(self, request: NotificationRequest) -> NotificationResponse:
        """
        Resolve the request's target and deliver the notification.

        Args:
            request: Notification and target specification

        Returns:
            NotificationResponse; ``success`` is True whenever the request was
            accepted, even if some batches failed (see ``failures``)

        Raises:
            InvalidArgumentError: If no usable target is present
        """
        target = require_target(request)

        log_level = logging.INFO if request.show_log else logging.DEBUG
        payload = self.build_payload(request)

        if request.response_token_list:
            mode = "list_only"
        elif request.dry_run:
            mode = "dry_run"
        else:
            mode = "send"
        record_notification_request(target.kind, mode)

        if isinstance(target, TokenTarget):
            return await self._send_to_tokens(request, target, payload, log_level)
        if isinstance(target, TopicTarget):
            return await self._send_to_topic(request, target, payload, log_level)
        return await self._send_to_documents(request, target, payload, log_level)

    async def _send_to_tokens(
        self,
        request: NotificationRequest,
        target: TokenTarget,
        payload: NotificationPayload,
        log_level: int,
    ) -> NotificationResponse:
        seen = TokenDeduplicator()
        batches = self._resolver.resolve_tokens(target, seen)
        record_tokens_resolved("token", len(seen))
        logger.log(
            log_level,
            "Notification target tokens resolved",
            extra={"tokens": len(seen), "batches": len(batches)},
        )

        if request.response_token_list:
            return NotificationResponse(success=True, results=batches)

        result = await self._dispatcher.send_tokens(payload, batches, request.dry_run)
        return self._response(result)

    async def _send_to_topic(
        self,
        request: NotificationRequest,
        target: TopicTarget,
        payload: NotificationPayload,
        log_level: int,
    ) -> NotificationResponse:
        topic = self._resolver.resolve_topic(target)
        logger.log(log_level, f"Notification target topic: {topic}", extra={"topic": topic})

        if request.response_token_list:
            return NotificationResponse(success=True, results=topic)

        result = await self._dispatcher.send_topic(payload, topic, request.dry_run)
        return self._response(result)

    async def _send_to_documents(
        self,
        request: NotificationRequest,
        target: Any,
        payload: NotificationPayload,
        log_level: int,
    ) -> NotificationResponse:
        if isinstance(target, CollectionTarget):
            logger.log(
                log_level,
                f"Notification target collection path: {target.path}",
                extra={
                    "path": target.path,
                    "filters": len(target.filters),
                    "conditions": len(target.conditions),
                },
            )
        elif isinstance(target, DocumentTarget):
            logger.log(
                log_level,
                f"Notification target document path: {target.path}",
                extra={"path": target.path, "conditions": len(target.conditions)},
            )

        seen = TokenDeduplicator()
        aggregated = DispatchResult()
        page_batches: List[List[List[str]]] = []
        next_index = 0
        pages = 0

        async for tokens in self._resolver.iter_token_pages(target, log_level):
            pages += 1
            batches = self._resolver.batches(tokens, seen)
            record_tokens_resolved(target.kind, sum(len(batch) for batch in batches))

            if request.response_token_list:
                page_batches.append(batches)
                continue

            page_result = await self._dispatcher.send_tokens(
                payload,
                batches,
                request.dry_run,
                start_index=next_index,
            )
            next_index += len(batches)
            aggregated.merge(page_result)

        logger.log(
            log_level,
            "Notification target documents resolved",
            extra={"path": target.path, "pages": pages, "tokens": len(seen)},
        )

        if request.response_token_list:
            return NotificationResponse(success=True, results=page_batches)
        return self._response(aggregated)

    @staticmethod
    def _response(result: DispatchResult) -> NotificationResponse:
        if result.failures:
            logger.warning(
                "Notification accepted with failed deliveries",
                extra={
                    "failed": result.failed_keys,
                    "succeeded": len(result.results),
                },
            )
        return NotificationResponse(
            success=True,
            results=result.results,
            failures=result.failures,
        )
