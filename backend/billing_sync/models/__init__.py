"""
数据库模型定义模块

模型按功能拆分：
- user.py: 用户目录（只读）
- subscription.py: 订阅记录
"""
from sqlmodel import SQLModel

from .base import utc_now
from .subscription import Subscription
from .user import User

__all__ = [
    "SQLModel",
    "utc_now",
    "User",
    "Subscription",
]
