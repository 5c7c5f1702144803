"""
Sequential batch dispatch with per-batch failure isolation.

Every batch (or topic) is one provider call. Calls are awaited one after the
other so that provider load stays bounded and each result maps to exactly
one batch. A call that raises is logged together with the payload, recorded
as a BatchFailure and left out of the results; the remaining batches are
still sent.
"""

import logging
import time
from typing import List, Sequence

from herald.core.metrics import record_push_batch
from herald.services.push.constants import MAX_BATCH_SIZE
from herald.services.push.models import (
    BatchFailure,
    DispatchResult,
    NotificationPayload,
)
from herald.services.push.provider import PushProvider

logger = logging.getLogger(__name__)


class BatchDispatcher:
    """
    Sends token batches and topics through a PushProvider.

    Usage:
        dispatcher = BatchDispatcher(provider)
        result = await dispatcher.send_tokens(payload, [["t1", "t2"], ["t3"]])
        result.results   # {"0": ..., "1": ...}
        result.failures  # [] unless a call raised
    """

    def __init__(self, provider: PushProvider):
        self._provider = provider

    async def send_tokens(
        self,
        payload: NotificationPayload,
        batches: Sequence[List[str]],
        dry_run: bool = False,
        start_index: int = 0,
    ) -> DispatchResult:
        """
        Send each batch with one provider call.

        Args:
            payload: Notification payload
            batches: Token batches of at most 500 tokens
            dry_run: Forwarded to the provider (validate only)
            start_index: Index of the first batch; keys are str(index)

        Returns:
            DispatchResult keyed by batch index
        """
        result = DispatchResult()
        for offset, batch in enumerate(batches):
            key = str(start_index + offset)
            if len(batch) > MAX_BATCH_SIZE:
                # Never hand an oversized batch to the provider
                error = ValueError(f"Batch {key} has {len(batch)} tokens (limit {MAX_BATCH_SIZE})")
                self._record_failure(result, payload, key, "tokens", len(batch), error)
                continue

            start_time = time.perf_counter()
            try:
                response = await self._provider.send_multicast(payload, list(batch), dry_run)
            except Exception as e:
                record_push_batch("tokens", "failure", time.perf_counter() - start_time)
                self._record_failure(result, payload, key, "tokens", len(batch), e)
                continue

            record_push_batch("tokens", "success", time.perf_counter() - start_time)
            result.results[key] = response.to_dict() if hasattr(response, "to_dict") else response
            logger.debug(
                "Token batch dispatched",
                extra={"batch": key, "tokens": len(batch), "dry_run": dry_run},
            )
        return result

    async def send_topic(
        self,
        payload: NotificationPayload,
        topic: str,
        dry_run: bool = False,
    ) -> DispatchResult:
        """Send to a topic with a single provider call; the result key is the topic."""
        result = DispatchResult()
        start_time = time.perf_counter()
        try:
            message_id = await self._provider.send_to_topic(payload, topic, dry_run)
        except Exception as e:
            record_push_batch("topic", "failure", time.perf_counter() - start_time)
            self._record_failure(result, payload, topic, "topic", 0, e)
            return result

        record_push_batch("topic", "success", time.perf_counter() - start_time)
        result.results[topic] = message_id
        logger.debug("Topic dispatched", extra={"topic": topic, "dry_run": dry_run})
        return result

    def _record_failure(
        self,
        result: DispatchResult,
        payload: NotificationPayload,
        key: str,
        destination: str,
        token_count: int,
        error: Exception,
    ) -> None:
        logger.error(
            f"Push delivery failed for {destination} {key}: {error}",
            extra={
                "batch": key,
                "destination": destination,
                "token_count": token_count,
                "error_type": type(error).__name__,
                "payload": payload.to_log_dict(),
            },
            exc_info=error,
        )
        result.failures.append(
            BatchFailure(
                key=key,
                destination=destination,
                token_count=token_count,
                error=str(error),
                error_type=type(error).__name__,
            )
        )
