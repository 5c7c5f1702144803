"""
Data model for notification targeting and delivery.

Covers:
- Filter conditions evaluated against documents
- Target specifications (token, topic, collection, document)
- Token value normalization (single token vs token list)
- Provider-agnostic notification payload
- Dispatch results and the response returned to callers
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Literal, Optional, Tuple, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from herald.services.push.constants import (
    ANDROID_PRIORITY,
    DEFAULT_CLICK_ACTION,
    INVALID_ARGUMENT,
    LINK_DATA_KEY,
    MODEL_TOKEN_LIST_KEY,
    MODEL_TOKEN_TYPE,
    MODEL_TOKEN_TYPE_KEY,
)


# =============================================================================
# Errors
# =============================================================================


class HeraldError(Exception):
    """Base class for errors raised to callers."""

    code = "internal"


class InvalidArgumentError(HeraldError):
    """Raised when a request carries no usable target or malformed fields."""

    code = INVALID_ARGUMENT


class ProviderConfigurationError(HeraldError):
    """Raised when a push provider cannot be initialized."""

    code = "failed-precondition"


# =============================================================================
# Conditions
# =============================================================================


class ConditionOperator(str, Enum):
    """Operators supported by the document condition DSL."""

    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    LESS_THAN = "lessThan"
    LESS_OR_EQUAL = "lessOrEqual"
    GREATER_THAN = "greaterThan"
    GREATER_OR_EQUAL = "greaterOrEqual"
    ARRAY_CONTAINS = "arrayContains"
    ARRAY_CONTAINS_ANY = "arrayContainsAny"
    IN = "in"
    NOT_IN = "notIn"
    IS_NULL = "isNull"
    IS_NOT_NULL = "isNotNull"


# Operator names used by existing client payloads
LEGACY_OPERATOR_NAMES: Dict[str, ConditionOperator] = {
    "equalTo": ConditionOperator.EQUALS,
    "notEqualTo": ConditionOperator.NOT_EQUALS,
    "lessThanOrEqualTo": ConditionOperator.LESS_OR_EQUAL,
    "greaterThanOrEqualTo": ConditionOperator.GREATER_OR_EQUAL,
    "whereIn": ConditionOperator.IN,
    "whereNotIn": ConditionOperator.NOT_IN,
}

VALUELESS_OPERATORS = frozenset({ConditionOperator.IS_NULL, ConditionOperator.IS_NOT_NULL})

LIST_VALUE_OPERATORS = frozenset({
    ConditionOperator.ARRAY_CONTAINS_ANY,
    ConditionOperator.IN,
    ConditionOperator.NOT_IN,
})


class Condition(BaseModel):
    """A single filter condition on a document field.

    Accepts both ``{"operator", "field_path", "value"}`` and the wire form
    ``{"type", "key", "value"}``.

    When the field holds a document reference and ``value`` is a condition
    (or a list of conditions), the nested conditions are checked against the
    referenced document instead. Such a condition may omit its operator.

    Attributes:
        operator: Comparison to apply
        field_path: Plain key or dotted/bracketed path into the document
        value: Comparison operand (required except for isNull/isNotNull)
    """

    model_config = ConfigDict(populate_by_name=True)

    operator: Optional[ConditionOperator] = Field(None, alias="type", description="Condition operator")
    field_path: str = Field(..., alias="key", min_length=1, description="Field path")
    value: Any = Field(None, description="Operand for the operator")

    @field_validator("operator", mode="before")
    @classmethod
    def translate_legacy_operator(cls, v: Any) -> Any:
        """Map legacy operator names onto the current ones."""
        if isinstance(v, str) and v in LEGACY_OPERATOR_NAMES:
            return LEGACY_OPERATOR_NAMES[v]
        return v

    @model_validator(mode="after")
    def validate_value(self) -> "Condition":
        """Require an operand where the operator needs one."""
        if self.operator is None:
            if self.nested_conditions() is None:
                raise ValueError("Condition without a type must hold nested conditions")
            return self
        if self.operator in VALUELESS_OPERATORS:
            return self
        if self.value is None:
            raise ValueError(f"Operator '{self.operator.value}' requires a value")
        if self.operator in LIST_VALUE_OPERATORS and not isinstance(self.value, (list, tuple)):
            raise ValueError(f"Operator '{self.operator.value}' requires a list value")
        return self

    def nested_conditions(self) -> Optional[List["Condition"]]:
        """Conditions held in ``value`` for a referenced document, if any."""
        value = self.value
        if isinstance(value, Condition):
            return [value]
        if isinstance(value, dict):
            items: List[Any] = [value]
        elif isinstance(value, (list, tuple)) and value:
            items = list(value)
        else:
            return None
        if not all(isinstance(item, (dict, Condition)) for item in items):
            return None
        try:
            return [
                item if isinstance(item, Condition) else Condition.model_validate(item)
                for item in items
            ]
        except ValidationError:
            return None

    @property
    def store_filterable(self) -> bool:
        """True when a document store can apply this condition in its query."""
        return self.operator is not None and self.nested_conditions() is None


# =============================================================================
# Token values
# =============================================================================


class ModelToken:
    """Wrapped token collection as stored by client-side models.

    Serialized form: ``{"@type": "ModelToken", "@list": [...], "@target": ...}``.
    """

    def __init__(self, tokens: Iterable[str], target: Optional[str] = None):
        self._tokens = list(tokens)
        self.target = target

    def value(self) -> List[str]:
        return list(self._tokens)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            MODEL_TOKEN_TYPE_KEY: MODEL_TOKEN_TYPE,
            MODEL_TOKEN_LIST_KEY: list(self._tokens),
        }
        if self.target is not None:
            data["@target"] = self.target
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ModelToken":
        return cls(data.get(MODEL_TOKEN_LIST_KEY) or [], target=data.get("@target"))

    def __repr__(self) -> str:
        return f"ModelToken({self._tokens!r})"


@dataclass(frozen=True)
class SingleToken:
    """Token field holding exactly one device token."""

    token: str

    def as_list(self) -> List[str]:
        return [self.token]


@dataclass(frozen=True)
class TokenList:
    """Token field holding any number of device tokens."""

    tokens: Tuple[str, ...] = ()

    def as_list(self) -> List[str]:
        return list(self.tokens)


TokenValue = Union[SingleToken, TokenList]


def is_wrapped_token_collection(raw: Any) -> bool:
    """True for ModelToken-like objects and their serialized map form."""
    if isinstance(raw, dict):
        return raw.get(MODEL_TOKEN_TYPE_KEY) == MODEL_TOKEN_TYPE
    return callable(getattr(raw, "value", None))


def normalize_tokens(raw: Any) -> Optional[TokenValue]:
    """
    Convert a raw token field into a TokenValue.

    Legal shapes are a single string, a list of strings, or a wrapped token
    collection. Empty strings and non-string list items are dropped.

    Args:
        raw: Value read from a request or a document field

    Returns:
        SingleToken or TokenList, or None when the shape is not a token field
    """
    if raw is None:
        return None

    if isinstance(raw, str):
        return SingleToken(raw) if raw else TokenList()

    if is_wrapped_token_collection(raw):
        if isinstance(raw, dict):
            items = raw.get(MODEL_TOKEN_LIST_KEY) or []
        else:
            items = raw.value() or []
        return TokenList(tuple(t for t in items if isinstance(t, str) and t))

    if isinstance(raw, (list, tuple, set, frozenset)):
        return TokenList(tuple(t for t in raw if isinstance(t, str) and t))

    return None


def flatten(value: Optional[TokenValue]) -> List[str]:
    """Token list of a TokenValue; None flattens to an empty list."""
    if value is None:
        return []
    return value.as_list()


# =============================================================================
# Target specifications
# =============================================================================


class TokenFieldReference(BaseModel):
    """Follow a document reference before reading the token field.

    ``{"key": "owner", "value": "fcmTokens"}`` reads the reference stored in
    ``owner``, loads that document and reads ``fcmTokens`` from it.
    """

    key: str = Field(..., min_length=1, description="Field holding a document reference")
    value: Union[str, "TokenFieldReference"] = Field(..., description="Token field in the referenced document")


TokenField = Union[str, TokenFieldReference]


class TokenTarget(BaseModel):
    """Deliver to explicit device tokens."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    kind: Literal["token"] = "token"
    tokens: Any = Field(..., description="Token, token list or wrapped token collection")

    @field_validator("tokens")
    @classmethod
    def validate_tokens(cls, v: Any) -> Any:
        """Reject values that are not a token shape."""
        if normalize_tokens(v) is None:
            raise ValueError("tokens must be a string, a list of strings or a ModelToken")
        return v


class TopicTarget(BaseModel):
    """Deliver to an FCM topic."""

    kind: Literal["topic"] = "topic"
    topic: str = Field(..., min_length=1, description="FCM topic name")


class CollectionTarget(BaseModel):
    """Deliver to tokens found on documents of a collection.

    Attributes:
        path: Collection path
        filters: Conditions pushed to the store query and re-checked in memory
        conditions: Conditions evaluated in memory only
        token_field: Field path (or reference hop) holding the tokens
    """

    kind: Literal["collection"] = "collection"
    path: str = Field(..., min_length=1, description="Collection path")
    filters: List[Condition] = Field(default_factory=list)
    conditions: List[Condition] = Field(default_factory=list)
    token_field: TokenField = Field(..., description="Field holding device tokens")


class DocumentTarget(BaseModel):
    """Deliver to tokens found on a single document."""

    kind: Literal["document"] = "document"
    path: str = Field(..., min_length=1, description="Document path")
    conditions: List[Condition] = Field(default_factory=list)
    token_field: TokenField = Field(..., description="Field holding device tokens")


TargetSpecification = Union[TokenTarget, TopicTarget, CollectionTarget, DocumentTarget]


# =============================================================================
# Request
# =============================================================================


def _flag(payload: Dict[str, Any], key: str) -> Any:
    """Raw flag value for pydantic's bool parsing; absent or null means False."""
    value = payload.get(key)
    return False if value is None else value


class NotificationRequest(BaseModel):
    """A push notification together with how to find its recipients.

    Exactly one target is expected. When several are given the first in
    the order token, topic, collection, document is used.
    """

    title: str = Field(..., min_length=1, description="Notification title")
    body: str = Field(..., min_length=1, description="Notification body text")
    link: Optional[str] = Field(None, description="Link opened when the notification is tapped")
    channel_id: Optional[str] = Field(None, description="Android notification channel ID")
    data: Dict[str, Any] = Field(default_factory=dict, description="Custom data payload")
    badge_count: Optional[int] = Field(None, ge=0, description="iOS badge number")
    sound: Optional[str] = Field(None, description="Sound name")

    token_target: Optional[TokenTarget] = None
    topic_target: Optional[TopicTarget] = None
    collection_target: Optional[CollectionTarget] = None
    document_target: Optional[DocumentTarget] = None

    dry_run: bool = Field(default=False, description="Validate with the provider but do not deliver")
    response_token_list: bool = Field(default=False, description="Return resolved tokens without sending")
    show_log: bool = Field(default=False, description="Log resolution steps at INFO level")

    @property
    def target(self) -> Optional[TargetSpecification]:
        for candidate in (
            self.token_target,
            self.topic_target,
            self.collection_target,
            self.document_target,
        ):
            if candidate is not None:
                return candidate
        return None

    def merged_data(self) -> Dict[str, Any]:
        """Data payload with the link stored under the reserved key."""
        data = dict(self.data)
        if self.link:
            data[LINK_DATA_KEY] = self.link
        return data

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "NotificationRequest":
        """
        Build a request from the flat callable-function payload.

        Recognized keys: title, body, link, channelId, data, badgeCount, sound,
        targetToken, targetTopic, targetCollectionPath, targetDocumentPath,
        targetTokenField, targetWheres, targetConditions, responseTokenList,
        showLog, dryRun.

        Raises:
            InvalidArgumentError: If the payload does not validate
        """
        if not isinstance(payload, dict):
            raise InvalidArgumentError("Notification payload must be an object.")

        token_field = payload.get("targetTokenField")
        kwargs: Dict[str, Any] = {
            "title": payload.get("title"),
            "body": payload.get("body"),
            "link": payload.get("link"),
            "channel_id": payload.get("channelId"),
            "data": payload.get("data") or {},
            "badge_count": payload.get("badgeCount"),
            "sound": payload.get("sound"),
            "dry_run": _flag(payload, "dryRun"),
            "response_token_list": _flag(payload, "responseTokenList"),
            "show_log": _flag(payload, "showLog"),
        }

        try:
            if payload.get("targetToken") is not None:
                kwargs["token_target"] = TokenTarget(tokens=payload["targetToken"])
            if payload.get("targetTopic") is not None:
                kwargs["topic_target"] = TopicTarget(topic=payload["targetTopic"])
            if payload.get("targetCollectionPath") is not None and token_field is not None:
                kwargs["collection_target"] = CollectionTarget(
                    path=payload["targetCollectionPath"],
                    filters=payload.get("targetWheres") or [],
                    conditions=payload.get("targetConditions") or [],
                    token_field=token_field,
                )
            if payload.get("targetDocumentPath") is not None and token_field is not None:
                kwargs["document_target"] = DocumentTarget(
                    path=payload["targetDocumentPath"],
                    conditions=payload.get("targetConditions") or [],
                    token_field=token_field,
                )
            return cls(**kwargs)
        except ValidationError as e:
            raise InvalidArgumentError(f"Query parameter is invalid: {e}") from e


# =============================================================================
# Payload and results
# =============================================================================


@dataclass
class NotificationPayload:
    """Provider-agnostic notification content.

    Built once per request and handed unchanged to every provider call.

    Attributes:
        title: Notification title
        body: Notification body text
        data: Custom data payload (link already merged)
        channel_id: Android notification channel ID
        badge_count: iOS badge number
        sound: Sound name
        click_action: Android click action
        priority: Android message priority
    """

    title: str
    body: str
    data: Dict[str, Any] = field(default_factory=dict)
    channel_id: Optional[str] = None
    badge_count: Optional[int] = None
    sound: Optional[str] = None
    click_action: str = DEFAULT_CLICK_ACTION
    priority: str = ANDROID_PRIORITY

    def to_log_dict(self) -> Dict[str, Any]:
        """Shape logged when a provider call fails."""
        return {
            "notification": {"title": self.title, "body": self.body},
            "android": {
                "priority": self.priority,
                "notification": {
                    "click_action": self.click_action,
                    "channel_id": self.channel_id,
                    "sound": self.sound,
                },
            },
            "apns": {"aps": {"sound": self.sound, "badge": self.badge_count}},
            "data": self.data,
        }


@dataclass
class MulticastResult:
    """Outcome of one multicast provider call.

    Attributes:
        success_count: Tokens accepted by the provider
        failure_count: Tokens rejected by the provider
        message_ids: Provider message ID per token (None where rejected)
        failed_tokens: Tokens the provider rejected
    """

    success_count: int = 0
    failure_count: int = 0
    message_ids: List[Optional[str]] = field(default_factory=list)
    failed_tokens: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "message_ids": list(self.message_ids),
            "failed_tokens": list(self.failed_tokens),
        }


class BatchFailure(BaseModel):
    """A provider call that raised and was left out of the results."""

    key: str = Field(..., description="Batch index or topic name")
    destination: Literal["tokens", "topic"] = "tokens"
    token_count: int = Field(default=0, ge=0)
    error: str = ""
    error_type: str = ""


@dataclass
class DispatchResult:
    """Aggregated outcome of every provider call made for one request.

    ``results`` maps batch index (as a string) or topic name to the provider
    response. A key is absent exactly when its call failed; those calls are
    listed in ``failures``.
    """

    results: Dict[str, Any] = field(default_factory=dict)
    failures: List[BatchFailure] = field(default_factory=list)

    @property
    def all_succeeded(self) -> bool:
        return not self.failures

    @property
    def failed_keys(self) -> List[str]:
        return [f.key for f in self.failures]

    def merge(self, other: "DispatchResult") -> None:
        self.results.update(other.results)
        self.failures.extend(other.failures)


class NotificationResponse(BaseModel):
    """Response returned by the engine and the HTTP endpoint.

    ``success`` means the request was accepted. Delivery problems are
    reported in ``failures`` only.
    """

    success: bool = True
    results: Any = None
    failures: List[BatchFailure] = Field(default_factory=list)
