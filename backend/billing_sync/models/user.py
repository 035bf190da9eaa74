"""
用户模型模块

用户目录由认证系统维护，本服务只读。
"""
from datetime import datetime

from sqlalchemy import Column, DateTime, String
from sqlmodel import Field, SQLModel

from .base import utc_now


class User(SQLModel, table=True):
    """
    用户模型（只读）

    字段说明：
    - id: 用户 ID（认证系统分配，例如 UUID）
    - email: 邮箱，按原样精确匹配（区分大小写），建立索引用于单次查询
    - created_at: 创建时间
    """
    __tablename__ = "users"
    id: str = Field(sa_column=Column(String(64), primary_key=True))
    email: str | None = Field(
        default=None, sa_column=Column(String(255), index=True, nullable=True)
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
