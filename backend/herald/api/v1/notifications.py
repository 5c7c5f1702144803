"""
Notification API endpoints

- POST /api/v1/notifications/send - Resolve a target and send a push notification

The request body is the flat notification payload (title, body, link,
channelId, data, badgeCount, sound, targetToken, targetTopic,
targetCollectionPath, targetDocumentPath, targetTokenField, targetWheres,
targetConditions, responseTokenList, showLog, dryRun).
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, status

from herald.core.config import settings
from herald.services.push.document_store import DocumentStore, InMemoryDocumentStore
from herald.services.push.fcm_provider import FCMProvider
from herald.services.push.models import (
    InvalidArgumentError,
    NotificationRequest,
    NotificationResponse,
    ProviderConfigurationError,
)
from herald.services.push.notification_engine import NotificationEngine, require_target

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/notifications",
    tags=["notifications"]
)

_engine: Optional[NotificationEngine] = None


def create_document_store() -> DocumentStore:
    """Document store selected by DOCUMENT_STORE_BACKEND."""
    if settings.DOCUMENT_STORE_BACKEND == "firestore":
        from herald.services.push.firestore_store import FirestoreDocumentStore

        return FirestoreDocumentStore(
            project_id=settings.FCM_PROJECT_ID,
            credentials_path=settings.FCM_CREDENTIALS_FILE,
        )
    return InMemoryDocumentStore()


def get_notification_engine() -> NotificationEngine:
    """
    Process-wide engine built from settings on first use.

    Raises:
        ProviderConfigurationError: If FCM_PROJECT_ID is not set
    """
    global _engine
    if _engine is None:
        if not settings.FCM_PROJECT_ID:
            raise ProviderConfigurationError("FCM_PROJECT_ID is not configured")
        provider = FCMProvider(
            project_id=settings.FCM_PROJECT_ID,
            credentials_path=settings.FCM_CREDENTIALS_FILE,
        )
        _engine = NotificationEngine.create(
            provider=provider,
            store=create_document_store(),
            batch_size=settings.PUSH_BATCH_SIZE,
            page_size=settings.SCAN_PAGE_SIZE,
        )
        logger.info(
            "Notification engine initialized",
            extra={
                "project_id": settings.FCM_PROJECT_ID,
                "document_store": settings.DOCUMENT_STORE_BACKEND,
            }
        )
    return _engine


def reset_notification_engine() -> None:
    """Drop the cached engine (settings changed or shutdown)."""
    global _engine
    _engine = None


def notification_request_dependency(
    payload: Dict[str, Any] = Body(..., description="Notification payload"),
) -> NotificationRequest:
    """Parse the payload and reject requests without a usable target (400)."""
    try:
        request = NotificationRequest.from_payload(payload)
        require_target(request)
    except InvalidArgumentError as e:
        logger.warning(f"Rejected notification request: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": e.code, "message": str(e)}
        )
    return request


def notification_engine_dependency() -> NotificationEngine:
    try:
        return get_notification_engine()
    except ProviderConfigurationError as e:
        logger.error(f"Notification engine unavailable: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": e.code, "message": str(e)}
        )


@router.post("/send", response_model=NotificationResponse)
async def send_notification(
    request: NotificationRequest = Depends(notification_request_dependency),
    engine: NotificationEngine = Depends(notification_engine_dependency),
):
    """
    Send a push notification to a token, topic, collection or document target.

    **Response:**
    ```json
    {
        "success": true,
        "results": {"0": {"success_count": 2, "failure_count": 0, ...}},
        "failures": []
    }
    ```

    With `responseTokenList` the resolved token batches (or the topic) are
    returned in `results` and nothing is sent.

    **Status Codes:**
    - 200: Request accepted (see `failures` for batches that could not be sent)
    - 400: Missing target or malformed payload (`invalid-argument`), checked
      before the provider
    - 503: Push provider not configured
    """
    return await engine.send_notification(request)
