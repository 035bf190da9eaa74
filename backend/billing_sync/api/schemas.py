"""
API 请求/响应数据模型（Schema）

这些模型不是数据库表，只用于 API 数据交换。
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from billing_sync.enums import ReconcileOutcome


class ApiEnvelope(BaseModel):
    """
    API 统一响应格式

    - code: 状态码（0 表示成功，非 0 表示错误）
    - message: 消息（成功时为 "success"，错误时为错误描述）
    - data: 数据（成功时返回业务数据，错误时为 None）

    示例响应：
        {"code": 0, "message": "success", "data": {...}}
        {"code": 400101, "message": "Invalid webhook signature", "data": None}
    """
    code: int = 0
    message: str = "success"
    data: Any | None = None


class WebhookAck(BaseModel):
    """Webhook 确认数据"""
    received: bool = True
    event_id: str
    event_type: str
    outcome: ReconcileOutcome
