"""Pytest fixtures and configuration for test suite

This module provides:
1. Factory functions for documents and requests with sensible defaults
2. A mock push provider recording every call
3. An in-memory document store and an engine wired to both

Factory Functions:
    - make_request(**overrides) -> NotificationRequest
    - make_user(tokens, **fields) -> dict
"""
from typing import Any, Dict, List
from unittest.mock import AsyncMock

import pytest

from herald.services.push.document_store import InMemoryDocumentStore
from herald.services.push.models import (
    MulticastResult,
    NotificationPayload,
    NotificationRequest,
)
from herald.services.push.notification_engine import NotificationEngine


# =============================================================================
# Factory Functions for Test Objects
# =============================================================================

def make_request(**overrides) -> NotificationRequest:
    """Build a NotificationRequest; targets and flags come from overrides."""
    fields: Dict[str, Any] = {
        "title": "Order shipped",
        "body": "Your order is on its way",
    }
    fields.update(overrides)
    return NotificationRequest(**fields)


def make_user(tokens: Any, **fields) -> Dict[str, Any]:
    """Document data for a user holding ``tokens`` in fcmTokens."""
    data: Dict[str, Any] = {"fcmTokens": tokens, "active": True}
    data.update(fields)
    return data


def multicast_ok(payload: NotificationPayload, tokens: List[str], dry_run: bool = False) -> MulticastResult:
    """Provider side effect accepting every token."""
    return MulticastResult(
        success_count=len(tokens),
        failure_count=0,
        message_ids=[f"msg-{token}" for token in tokens],
    )


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def sample_payload():
    """Notification payload as built by the engine."""
    return NotificationPayload(
        title="Order shipped",
        body="Your order is on its way",
        data={"orderId": "ord-1", "@link": "app://orders/ord-1"},
        channel_id="orders",
        badge_count=1,
        sound="default",
    )


@pytest.fixture
def mock_provider():
    """Push provider mock accepting every token and topic."""
    provider = AsyncMock()
    provider.send_multicast = AsyncMock(side_effect=multicast_ok)
    provider.send_to_topic = AsyncMock(return_value="projects/herald-test/messages/1")
    provider.close = AsyncMock()
    return provider


@pytest.fixture
def memory_store():
    """In-memory store with three users, two of them active."""
    return InMemoryDocumentStore({
        "users/alice": make_user(["t1", "t2"]),
        "users/bob": make_user("t3"),
        "users/carol": make_user(["t4"], active=False),
    })


@pytest.fixture
def engine(mock_provider, memory_store):
    """Engine wired to the mock provider and the in-memory store."""
    return NotificationEngine.create(provider=mock_provider, store=memory_store)
