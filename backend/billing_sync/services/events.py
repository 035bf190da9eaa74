"""
Stripe 事件解析

把签名校验通过的请求体解析为带类型标签的事件对象：

- checkout.session.completed    -> SessionCompleted
- customer.subscription.updated -> SubscriptionUpdated
- customer.subscription.deleted -> SubscriptionDeleted
- 其他所有类型                   -> UnknownEvent

Stripe 随时可能新增事件类型，未知类型不是错误，交给调用方确认后忽略。
"""

from __future__ import annotations

import json
import logging
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from billing_sync.api.errors import InvalidPayloadError
from billing_sync.enums import BillingEventKind

logger = logging.getLogger(__name__)


class _BaseEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider_event_id: str
    event_type: str
    created: int | None = None  # Stripe 事件创建时间（unix 秒）
    raw_payload: bytes = Field(default=b"", repr=False, exclude=True)


class SessionCompleted(_BaseEvent):
    """checkout.session.completed"""
    kind: Literal[BillingEventKind.session_completed] = BillingEventKind.session_completed
    customer_email: str | None = None
    client_reference_id: str | None = None
    provider_customer_id: str | None = None
    provider_subscription_id: str | None = None


class SubscriptionUpdated(_BaseEvent):
    """customer.subscription.updated"""
    kind: Literal[BillingEventKind.subscription_updated] = BillingEventKind.subscription_updated
    provider_subscription_id: str = Field(min_length=1)
    provider_customer_id: str | None = None
    status: str | None = None


class SubscriptionDeleted(_BaseEvent):
    """customer.subscription.deleted"""
    kind: Literal[BillingEventKind.subscription_deleted] = BillingEventKind.subscription_deleted
    provider_subscription_id: str = Field(min_length=1)
    provider_customer_id: str | None = None
    status: str | None = None


class UnknownEvent(_BaseEvent):
    kind: Literal[BillingEventKind.unknown] = BillingEventKind.unknown


BillingEvent = SessionCompleted | SubscriptionUpdated | SubscriptionDeleted | UnknownEvent


def _str_or_none(value: Any) -> str | None:
    """Stripe 的关联字段可能是 ID 字符串，也可能是展开后的对象"""
    if isinstance(value, dict):
        value = value.get("id")
    if value is None or value == "":
        return None
    return str(value)


def _session_completed(common: dict[str, Any], obj: dict[str, Any]) -> SessionCompleted:
    details = obj.get("customer_details") or {}
    email = details.get("email") if isinstance(details, dict) else None
    return SessionCompleted(
        **common,
        customer_email=email or obj.get("customer_email") or None,
        client_reference_id=_str_or_none(obj.get("client_reference_id")),
        provider_customer_id=_str_or_none(obj.get("customer")),
        provider_subscription_id=_str_or_none(obj.get("subscription")),
    )


def _subscription_updated(common: dict[str, Any], obj: dict[str, Any]) -> SubscriptionUpdated:
    return SubscriptionUpdated(
        **common,
        provider_subscription_id=_str_or_none(obj.get("id")) or "",
        provider_customer_id=_str_or_none(obj.get("customer")),
        status=obj.get("status"),
    )


def _subscription_deleted(common: dict[str, Any], obj: dict[str, Any]) -> SubscriptionDeleted:
    return SubscriptionDeleted(
        **common,
        provider_subscription_id=_str_or_none(obj.get("id")) or "",
        provider_customer_id=_str_or_none(obj.get("customer")),
        status=obj.get("status"),
    )


_DECODERS = {
    "checkout.session.completed": _session_completed,
    "customer.subscription.updated": _subscription_updated,
    "customer.subscription.deleted": _subscription_deleted,
}


def parse_event(payload: bytes) -> BillingEvent:
    """
    解析已校验的 Stripe 事件

    Args:
        payload: 签名校验通过的原始请求体

    Returns:
        对应类型的事件对象，未知类型返回 UnknownEvent

    Raises:
        InvalidPayloadError: 不是 JSON、缺少 id/type，或已知类型缺少必要字段
    """
    try:
        data = json.loads(payload)
    except ValueError:
        raise InvalidPayloadError("Invalid JSON payload")

    if not isinstance(data, dict):
        raise InvalidPayloadError()

    event_id = data.get("id")
    event_type = data.get("type")
    if not event_id or not event_type:
        raise InvalidPayloadError("Missing event id/type")

    created = data.get("created")
    common = {
        "provider_event_id": str(event_id),
        "event_type": str(event_type),
        "created": created if isinstance(created, int) else None,
        "raw_payload": payload,
    }

    decoder = _DECODERS.get(str(event_type))
    if decoder is None:
        return UnknownEvent(**common)

    body = data.get("data")
    obj = body.get("object") if isinstance(body, dict) else None
    if not isinstance(obj, dict):
        raise InvalidPayloadError("Missing event data.object")

    try:
        return decoder(common, obj)
    except ValidationError as e:
        logger.warning(f"[WEBHOOK] Malformed {event_type} event {event_id}: {e.error_count()} error(s)")
        raise InvalidPayloadError(f"Malformed {event_type} event")
