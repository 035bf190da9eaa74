"""
订阅对账

把解析后的 Stripe 事件应用到订阅记录，是订阅记录唯一的写入方。

- checkout 完成：按 user_id upsert，状态置为 active
- 订阅更新：Stripe 状态恰好为 "active" -> active，其他任何值 -> inactive
- 订阅删除：无论事件中的状态是什么，一律 canceled

更新/删除找不到记录时（例如比 checkout 事件先到，或 checkout 被放弃）
只记录日志，不创建记录，也不要求 Stripe 重试。
"""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from billing_sync.api.errors import InfrastructureError
from billing_sync.crud import subscription as subscription_crud
from billing_sync.enums import ReconcileOutcome, SubscriptionStatus
from billing_sync.models import User
from billing_sync.services.events import (
    SessionCompleted,
    SubscriptionDeleted,
    SubscriptionUpdated,
)

logger = logging.getLogger(__name__)


def map_provider_status(provider_status: str | None) -> SubscriptionStatus:
    """
    Stripe 订阅状态 -> 本系统状态

    只有 "active" 映射为 active；trialing、past_due 等都映射为 inactive。
    """
    if provider_status == "active":
        return SubscriptionStatus.active
    return SubscriptionStatus.inactive


class SubscriptionReconciler:
    """订阅记录写入"""

    def __init__(self, session: Session):
        self.session = session

    def apply_session_completed(self, event: SessionCompleted, user: User) -> ReconcileOutcome:
        """checkout 完成：为用户创建或覆盖订阅记录"""
        try:
            written = subscription_crud.upsert_for_user(
                session=self.session,
                user_id=user.id,
                provider_customer_id=event.provider_customer_id,
                provider_subscription_id=event.provider_subscription_id,
                status=SubscriptionStatus.active,
                event_created=event.created,
            )
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"[RECONCILE] Upsert failed for user {user.id}: {e}")
            raise InfrastructureError("Subscription store unavailable")

        if not written:
            logger.info(
                f"[RECONCILE] Skipped stale {event.event_type} {event.provider_event_id} "
                f"for user {user.id}"
            )
            return ReconcileOutcome.stale_event

        logger.info(
            f"[RECONCILE] Activated subscription for user {user.id}: "
            f"customer={event.provider_customer_id}, sub={event.provider_subscription_id}"
        )
        return ReconcileOutcome.reconciled

    def apply_subscription_updated(self, event: SubscriptionUpdated) -> ReconcileOutcome:
        return self._update_status(event, map_provider_status(event.status))

    def apply_subscription_deleted(self, event: SubscriptionDeleted) -> ReconcileOutcome:
        return self._update_status(event, SubscriptionStatus.canceled)

    def _update_status(
        self,
        event: SubscriptionUpdated | SubscriptionDeleted,
        status: SubscriptionStatus,
    ) -> ReconcileOutcome:
        subscription_id = event.provider_subscription_id
        try:
            rows = subscription_crud.update_status_by_subscription_id(
                session=self.session,
                subscription_id=subscription_id,
                status=status,
                event_created=event.created,
            )
            if rows:
                logger.info(f"[RECONCILE] Subscription {subscription_id} -> {status.value}")
                return ReconcileOutcome.reconciled

            existing = subscription_crud.get_by_subscription_id(
                session=self.session, subscription_id=subscription_id
            )
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"[RECONCILE] Status update failed for {subscription_id}: {e}")
            raise InfrastructureError("Subscription store unavailable")

        if existing is None:
            logger.warning(
                f"[RECONCILE] No subscription record for {subscription_id} "
                f"({event.event_type} {event.provider_event_id}), nothing updated"
            )
            return ReconcileOutcome.subscription_not_found

        logger.info(
            f"[RECONCILE] Skipped stale {event.event_type} {event.provider_event_id} "
            f"for {subscription_id}"
        )
        return ReconcileOutcome.stale_event
