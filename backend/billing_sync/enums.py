"""
枚举类型定义模块

所有枚举都继承自 str 和 Enum，这样既可以用作字符串，又具有枚举的特性。
"""
from enum import Enum


class SubscriptionStatus(str, Enum):
    """
    订阅状态枚举

    - active: 激活中（Stripe 状态恰好为 "active"）
    - inactive: 未激活（Stripe 的其他所有状态：past_due、unpaid、trialing 等）
    - canceled: 已取消（订阅被删除）
    """
    active = "active"
    inactive = "inactive"
    canceled = "canceled"


class BillingEventKind(str, Enum):
    """
    账单事件类型

    只有前三种会写订阅记录，其他 Stripe 事件统一归为 unknown，确认后忽略。
    """
    session_completed = "session_completed"
    subscription_updated = "subscription_updated"
    subscription_deleted = "subscription_deleted"
    unknown = "unknown"


class ReconcileOutcome(str, Enum):
    """
    单个事件的处理结果（都会返回 200）

    - reconciled: 已写入订阅记录
    - identity_not_found: 找不到对应用户
    - subscription_not_found: 没有匹配的订阅记录
    - stale_event: 记录已被更新的事件覆盖，本事件忽略
    - ignored: 不处理的事件类型
    """
    reconciled = "reconciled"
    identity_not_found = "identity_not_found"
    subscription_not_found = "subscription_not_found"
    stale_event = "stale_event"
    ignored = "ignored"
