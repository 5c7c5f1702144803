"""
FCM (Firebase Cloud Messaging) Provider.

Implements multicast and topic delivery via the FCM HTTP v1 API.

Features:
- Firebase Admin SDK integration with service account auth
- Async wrapper for blocking SDK calls
- Android and APNs platform hints built from one payload
- Token invalidation callback for unregistered devices

No retries are attempted here; a failed call is reported to the caller.
"""

import asyncio
import json
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from firebase_admin import messaging

from herald.core.logging_config import mask_token
from herald.services.push.constants import MAX_BATCH_SIZE
from herald.services.push.firebase_app import delete_firebase_app, get_firebase_app
from herald.services.push.models import MulticastResult, NotificationPayload
from herald.services.push.provider import PushProvider

logger = logging.getLogger(__name__)


def to_fcm_data(data: Dict[str, Any]) -> Optional[Dict[str, str]]:
    """FCM data values must be strings; containers and bools are JSON encoded."""
    if not data:
        return None
    string_data: Dict[str, str] = {}
    for key, value in data.items():
        if isinstance(value, str):
            string_data[str(key)] = value
        elif value is None:
            string_data[str(key)] = ""
        elif isinstance(value, (dict, list, tuple, bool)):
            string_data[str(key)] = json.dumps(value)
        else:
            string_data[str(key)] = str(value)
    return string_data


class FCMProvider(PushProvider):
    """
    FCM provider for multicast and topic push notifications.

    SDK calls are wrapped with asyncio.to_thread for async compatibility.

    Usage:
        provider = FCMProvider(
            project_id="herald-12345",
            credentials_path="/path/to/service-account.json",
        )
        result = await provider.send_multicast(payload, tokens)

    Attributes:
        project_id: Firebase project ID
        credentials_path: Service account JSON (application default credentials if None)
    """

    def __init__(
        self,
        project_id: str,
        credentials_path: Optional[str] = None,
        on_token_invalid: Optional[Callable[[str], None]] = None,
    ):
        """
        Initialize FCM provider.

        Args:
            project_id: Firebase project ID
            credentials_path: Path to the service account JSON file
            on_token_invalid: Optional callback when a device token is unregistered
        """
        self.project_id = project_id
        self.credentials_path = credentials_path
        self._on_token_invalid = on_token_invalid
        self._app = None

        logger.info(
            "FCM provider created",
            extra={
                "project_id": project_id,
                "credentials_path": credentials_path,
            }
        )

    def _ensure_app(self):
        if self._app is None:
            self._app = get_firebase_app(self.project_id, self.credentials_path)
        return self._app

    def _android_config(self, payload: NotificationPayload) -> "messaging.AndroidConfig":
        return messaging.AndroidConfig(
            priority=payload.priority,
            notification=messaging.AndroidNotification(
                title=payload.title,
                body=payload.body,
                click_action=payload.click_action,
                channel_id=payload.channel_id,
                sound=payload.sound,
            ),
        )

    def _apns_config(self, payload: NotificationPayload) -> "messaging.APNSConfig":
        return messaging.APNSConfig(
            payload=messaging.APNSPayload(
                aps=messaging.Aps(
                    sound=payload.sound,
                    badge=payload.badge_count,
                ),
            ),
        )

    def build_multicast_message(
        self,
        payload: NotificationPayload,
        tokens: List[str],
    ) -> "messaging.MulticastMessage":
        """Build the FCM multicast message for one batch."""
        return messaging.MulticastMessage(
            notification=messaging.Notification(title=payload.title, body=payload.body),
            android=self._android_config(payload),
            apns=self._apns_config(payload),
            data=to_fcm_data(payload.data),
            tokens=tokens,
        )

    def build_topic_message(
        self,
        payload: NotificationPayload,
        topic: str,
    ) -> "messaging.Message":
        """Build the FCM message for a topic send."""
        return messaging.Message(
            notification=messaging.Notification(title=payload.title, body=payload.body),
            android=self._android_config(payload),
            apns=self._apns_config(payload),
            data=to_fcm_data(payload.data),
            topic=topic,
        )

    def _report_invalid(self, token: str) -> None:
        if not self._on_token_invalid:
            return
        try:
            self._on_token_invalid(token)
        except Exception as e:
            logger.error(f"Token invalidation callback error: {e}")

    async def send_multicast(
        self,
        payload: NotificationPayload,
        tokens: List[str],
        dry_run: bool = False,
    ) -> MulticastResult:
        """
        Send a notification to up to 500 devices.

        Args:
            payload: Notification payload (same for all devices)
            tokens: FCM registration tokens
            dry_run: Validate with FCM without delivering

        Returns:
            MulticastResult with per-token message IDs

        Raises:
            ValueError: If more than 500 tokens are given
            ProviderConfigurationError: If Firebase cannot be initialized
            FirebaseError: If FCM rejects the whole request
        """
        if not tokens:
            return MulticastResult()
        if len(tokens) > MAX_BATCH_SIZE:
            raise ValueError(f"FCM multicast accepts at most {MAX_BATCH_SIZE} tokens, got {len(tokens)}")

        app = self._ensure_app()
        message = self.build_multicast_message(payload, tokens)

        start_time = time.time()
        response = await asyncio.to_thread(
            messaging.send_each_for_multicast,
            message,
            dry_run=dry_run,
            app=app,
        )

        result = MulticastResult(
            success_count=response.success_count,
            failure_count=response.failure_count,
        )
        for token, resp in zip(tokens, response.responses):
            if resp.success:
                result.message_ids.append(resp.message_id)
                continue
            result.message_ids.append(None)
            result.failed_tokens.append(token)
            if isinstance(resp.exception, messaging.UnregisteredError):
                logger.warning(
                    "FCM device token unregistered",
                    extra={"device_token": mask_token(token)},
                )
                self._report_invalid(token)

        logger.info(
            "FCM multicast complete",
            extra={
                "total": len(tokens),
                "success": result.success_count,
                "failed": result.failure_count,
                "dry_run": dry_run,
                "duration_ms": int((time.time() - start_time) * 1000),
            }
        )
        return result

    async def send_to_topic(
        self,
        payload: NotificationPayload,
        topic: str,
        dry_run: bool = False,
    ) -> str:
        """
        Send a notification to every device subscribed to ``topic``.

        Returns:
            FCM message ID
        """
        app = self._ensure_app()
        message = self.build_topic_message(payload, topic)

        start_time = time.time()
        message_id = await asyncio.to_thread(
            messaging.send,
            message,
            dry_run=dry_run,
            app=app,
        )
        logger.info(
            "FCM topic notification sent",
            extra={
                "topic": topic,
                "message_id": message_id,
                "dry_run": dry_run,
                "duration_ms": int((time.time() - start_time) * 1000),
            }
        )
        return message_id

    async def close(self) -> None:
        """Delete the Firebase app and mark the provider uninitialized."""
        if self._app is not None:
            try:
                delete_firebase_app(self._app)
            finally:
                self._app = None

    async def __aenter__(self) -> "FCMProvider":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
