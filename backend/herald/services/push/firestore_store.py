"""
Firestore-backed DocumentStore.

Uses the Firebase Admin SDK Firestore client. SDK calls are blocking, so they
are run with asyncio.to_thread.
"""

import asyncio
import logging
from typing import Any, List, Optional

from firebase_admin import firestore
from google.cloud.firestore_v1 import DocumentReference as FirestoreReference
from google.cloud.firestore_v1.base_query import FieldFilter

from herald.services.push.document_store import (
    Document,
    DocumentReference,
    DocumentStore,
    Page,
)
from herald.services.push.firebase_app import get_firebase_app
from herald.services.push.models import Condition, ConditionOperator

logger = logging.getLogger(__name__)

# Condition operator -> Firestore query operator
FIRESTORE_OPERATORS = {
    ConditionOperator.EQUALS: "==",
    ConditionOperator.NOT_EQUALS: "!=",
    ConditionOperator.LESS_THAN: "<",
    ConditionOperator.LESS_OR_EQUAL: "<=",
    ConditionOperator.GREATER_THAN: ">",
    ConditionOperator.GREATER_OR_EQUAL: ">=",
    ConditionOperator.ARRAY_CONTAINS: "array_contains",
    ConditionOperator.ARRAY_CONTAINS_ANY: "array_contains_any",
    ConditionOperator.IN: "in",
    ConditionOperator.NOT_IN: "not-in",
    ConditionOperator.IS_NULL: "==",
    ConditionOperator.IS_NOT_NULL: "!=",
}


def to_field_filter(condition: Condition) -> FieldFilter:
    """Translate a Condition into a Firestore FieldFilter."""
    op = FIRESTORE_OPERATORS[condition.operator]
    if condition.operator in (ConditionOperator.IS_NULL, ConditionOperator.IS_NOT_NULL):
        value = None
    elif isinstance(condition.value, tuple):
        value = list(condition.value)
    else:
        value = condition.value
    return FieldFilter(condition.field_path, op, value)


def convert_value(value: Any) -> Any:
    """Replace Firestore references with DocumentReference, recursively."""
    if isinstance(value, FirestoreReference):
        return DocumentReference(path=value.path)
    if isinstance(value, dict):
        return {k: convert_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [convert_value(v) for v in value]
    return value


def to_document(snapshot: Any) -> Document:
    return Document(
        id=snapshot.id,
        path=snapshot.reference.path,
        data=convert_value(snapshot.to_dict() or {}),
        source=snapshot,
    )


class FirestoreDocumentStore(DocumentStore):
    """
    DocumentStore reading from Cloud Firestore.

    Usage:
        store = FirestoreDocumentStore(project_id="my-project",
                                       credentials_path="/path/to/sa.json")
        doc = await store.get("users/alice")

    A pre-built Firestore client can be passed instead (tests, emulators).
    """

    def __init__(
        self,
        project_id: Optional[str] = None,
        credentials_path: Optional[str] = None,
        client: Any = None,
    ):
        if client is None:
            if not project_id:
                raise ValueError("project_id is required when no client is given")
            client = firestore.client(app=get_firebase_app(project_id, credentials_path))
        self._client = client

    async def get(self, path: str) -> Optional[Document]:
        snapshot = await asyncio.to_thread(self._client.document(path).get)
        if not snapshot.exists:
            return None
        return to_document(snapshot)

    async def scan(
        self,
        collection_path: str,
        filters: Optional[List[Condition]],
        page_size: int,
        cursor: Optional[Document] = None,
    ) -> Page:
        query = self._client.collection(collection_path)
        for condition in filters or []:
            if condition.store_filterable:
                query = query.where(filter=to_field_filter(condition))

        if cursor is not None:
            if cursor.source is not None:
                query = query.start_after(cursor.source)
            else:
                snapshot = await asyncio.to_thread(self._client.document(cursor.path).get)
                query = query.start_after(snapshot)
        query = query.limit(page_size)

        snapshots = await asyncio.to_thread(query.get)
        documents = [to_document(snapshot) for snapshot in snapshots]
        logger.debug(
            "Firestore page loaded",
            extra={
                "collection_path": collection_path,
                "page_size": page_size,
                "returned": len(documents),
            }
        )
        return Page(documents=documents)
