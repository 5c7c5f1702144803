"""
Push notification targeting and delivery.

This package contains:
- NotificationEngine - validates requests, resolves targets, dispatches batches
- TargetResolver - token, topic, collection and document targets
- BatchDispatcher - sequential provider calls with per-batch failures
- Document stores (in-memory and Firestore) and the paginated scanner
- FCMProvider - Firebase Cloud Messaging multicast and topic delivery
"""

from herald.services.push.batch_dispatcher import BatchDispatcher
from herald.services.push.conditions import ConditionEvaluator
from herald.services.push.document_store import (
    Document,
    DocumentReference,
    DocumentStore,
    InMemoryDocumentStore,
    Page,
)
from herald.services.push.fcm_provider import FCMProvider
from herald.services.push.models import (
    BatchFailure,
    CollectionTarget,
    Condition,
    ConditionOperator,
    DispatchResult,
    DocumentTarget,
    HeraldError,
    InvalidArgumentError,
    ModelToken,
    MulticastResult,
    NotificationPayload,
    NotificationRequest,
    NotificationResponse,
    ProviderConfigurationError,
    SingleToken,
    TokenFieldReference,
    TokenList,
    TokenTarget,
    TokenValue,
    TopicTarget,
    flatten,
    normalize_tokens,
)
from herald.services.push.notification_engine import NotificationEngine
from herald.services.push.provider import PushProvider
from herald.services.push.scanner import PaginatedScanner
from herald.services.push.target_resolver import TargetResolver, TokenDeduplicator

__all__ = [
    # Engine
    "NotificationEngine",
    "TargetResolver",
    "TokenDeduplicator",
    "BatchDispatcher",
    # Providers
    "PushProvider",
    "FCMProvider",
    # Storage
    "DocumentStore",
    "InMemoryDocumentStore",
    "Document",
    "DocumentReference",
    "Page",
    "PaginatedScanner",
    "ConditionEvaluator",
    # Models
    "NotificationRequest",
    "NotificationResponse",
    "NotificationPayload",
    "TokenTarget",
    "TopicTarget",
    "CollectionTarget",
    "DocumentTarget",
    "TokenFieldReference",
    "Condition",
    "ConditionOperator",
    "ModelToken",
    "SingleToken",
    "TokenList",
    "TokenValue",
    "normalize_tokens",
    "flatten",
    "MulticastResult",
    "DispatchResult",
    "BatchFailure",
    # Errors
    "HeraldError",
    "InvalidArgumentError",
    "ProviderConfigurationError",
]
