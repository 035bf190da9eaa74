"""
订阅模型模块

定义订阅相关的数据库模型。
"""
from datetime import datetime

from sqlalchemy import BigInteger, Column, DateTime, Integer, String
from sqlmodel import Field, SQLModel

from billing_sync.enums import SubscriptionStatus

from .base import utc_now


class Subscription(SQLModel, table=True):
    """
    订阅记录模型

    存储用户的 Stripe 订阅状态，只由 webhook 对账逻辑写入。
    每个用户最多一条记录；记录不会被物理删除，取消只是状态变化。

    字段说明：
    - id: 主键
    - user_id: 用户 ID（唯一）
    - provider_customer_id: Stripe 客户 ID（cus_...）
    - provider_subscription_id: Stripe 订阅 ID（sub_...），设置后不会被清空
    - status: 订阅状态（active / inactive / canceled）
    - last_event_created: 最后一次写入所用 Stripe 事件的 created 时间戳，
      用于丢弃乱序到达的旧事件
    - created_at: 创建时间
    - updated_at: 更新时间
    """
    __tablename__ = "subscriptions"
    id: int | None = Field(
        default=None,
        sa_column=Column(Integer, primary_key=True, autoincrement=True),
    )
    user_id: str = Field(
        sa_column=Column(String(64), unique=True, index=True, nullable=False)
    )

    provider_customer_id: str | None = Field(
        default=None, sa_column=Column(String(255), nullable=True)
    )
    provider_subscription_id: str | None = Field(
        default=None, sa_column=Column(String(255), index=True, nullable=True)
    )

    status: SubscriptionStatus = Field(sa_column=Column(String(16), nullable=False))
    last_event_created: int | None = Field(
        default=None, sa_column=Column(BigInteger, nullable=True)
    )

    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
