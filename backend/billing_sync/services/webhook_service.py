"""
Stripe Webhook 处理服务

负责一次 webhook 投递的完整流程：
签名校验 -> 事件解析 -> 按类型分发 -> （用户解析）-> 订阅对账。

每种事件类型只对应一个处理函数；未知类型直接确认并记录日志。
依赖（签名校验器、用户解析器、对账器）都由调用方构造后传入。
"""

import logging
from collections.abc import Callable
from typing import Any

from billing_sync.api.schemas import WebhookAck
from billing_sync.enums import BillingEventKind, ReconcileOutcome
from billing_sync.services.events import (
    BillingEvent,
    SessionCompleted,
    SubscriptionDeleted,
    SubscriptionUpdated,
    UnknownEvent,
    parse_event,
)
from billing_sync.services.identity import IdentityResolver
from billing_sync.services.reconciler import SubscriptionReconciler
from billing_sync.services.signature import SignatureVerifier

logger = logging.getLogger(__name__)


class WebhookProcessor:
    """
    Stripe webhook 处理器

    使用示例：
        processor = WebhookProcessor(verifier, resolver, reconciler)
        result = processor.process(payload, signature)
    """

    def __init__(
        self,
        verifier: SignatureVerifier,
        resolver: IdentityResolver,
        reconciler: SubscriptionReconciler,
    ):
        self.verifier = verifier
        self.resolver = resolver
        self.reconciler = reconciler
        self._handlers: dict[BillingEventKind, Callable[[Any], ReconcileOutcome]] = {
            BillingEventKind.session_completed: self._handle_session_completed,
            BillingEventKind.subscription_updated: self._handle_subscription_updated,
            BillingEventKind.subscription_deleted: self._handle_subscription_deleted,
            BillingEventKind.unknown: self._handle_unknown,
        }

    def process(self, payload: bytes, signature: str | None) -> WebhookAck:
        """
        处理一次 webhook 投递

        Args:
            payload: 请求体原始字节
            signature: Stripe-Signature 头部值

        Returns:
            WebhookAck，包含事件 ID、事件类型和处理结果

        Raises:
            ConfigurationError: 签名密钥未配置
            WebhookSignatureError: 签名校验失败
            InvalidPayloadError: 事件内容无法解析
            InfrastructureError: 用户目录 / 数据库 / Stripe API 暂时失败
        """
        verified = self.verifier.verify(payload, signature)
        event = parse_event(verified)

        logger.info(f"[WEBHOOK] Processing event type: {event.event_type} (ID: {event.provider_event_id})")
        outcome = self.dispatch(event)

        return WebhookAck(
            event_id=event.provider_event_id,
            event_type=event.event_type,
            outcome=outcome,
        )

    def dispatch(self, event: BillingEvent) -> ReconcileOutcome:
        return self._handlers[event.kind](event)

    def _handle_session_completed(self, event: SessionCompleted) -> ReconcileOutcome:
        user = self.resolver.resolve(event)
        if user is None:
            logger.warning(
                f"[WEBHOOK] No user found for checkout {event.provider_event_id} "
                f"(customer={event.provider_customer_id}, reference={event.client_reference_id})"
            )
            return ReconcileOutcome.identity_not_found
        return self.reconciler.apply_session_completed(event, user)

    def _handle_subscription_updated(self, event: SubscriptionUpdated) -> ReconcileOutcome:
        return self.reconciler.apply_subscription_updated(event)

    def _handle_subscription_deleted(self, event: SubscriptionDeleted) -> ReconcileOutcome:
        return self.reconciler.apply_subscription_deleted(event)

    def _handle_unknown(self, event: UnknownEvent) -> ReconcileOutcome:
        logger.info(f"[WEBHOOK] Unhandled event type: {event.event_type} - acknowledged")
        return ReconcileOutcome.ignored
