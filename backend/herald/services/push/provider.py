"""
Push provider interface.
"""

from abc import ABC, abstractmethod
from typing import List

from herald.services.push.models import MulticastResult, NotificationPayload


class PushProvider(ABC):
    """
    Delivers one notification payload per call.

    Implementations may raise on any delivery problem; the dispatcher
    catches, logs and records those errors per call.
    """

    @abstractmethod
    async def send_multicast(
        self,
        payload: NotificationPayload,
        tokens: List[str],
        dry_run: bool = False,
    ) -> MulticastResult:
        """Send to at most 500 device tokens; ``dry_run`` validates without delivering."""

    @abstractmethod
    async def send_to_topic(
        self,
        payload: NotificationPayload,
        topic: str,
        dry_run: bool = False,
    ) -> str:
        """Send to a topic and return the provider message ID."""

    async def close(self) -> None:
        """Release provider resources."""
        return None
