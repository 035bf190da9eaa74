"""
自定义异常模块

定义应用特定的异常类，用于统一的错误处理。
所有业务异常都继承自 AppError，在 main.py 中有统一的异常处理器。

Webhook 错误分类：
- WebhookSignatureError: 签名缺失/错误/过期，400，发送方不应原样重试
- InvalidPayloadError: 签名通过但内容无法解析，400
- ConfigurationError: 必需配置缺失，500，需要运维处理
- InfrastructureError: 用户目录/数据库/Stripe API 暂时不可用，500，发送方应重试
"""
from __future__ import annotations


class AppError(Exception):
    """
    应用自定义异常类

    包含：
    - code: 业务错误码（用于区分不同错误）
    - message: 错误消息（会直接返回给调用方，不能包含内部细节）
    - status_code: HTTP 状态码

    使用示例：
        raise AppError(code=404001, message="Not found", status_code=404)
    """

    def __init__(self, *, code: int, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code


class WebhookSignatureError(AppError):
    """Webhook 签名校验失败"""

    def __init__(self, message: str = "Invalid webhook signature") -> None:
        super().__init__(code=400101, message=message, status_code=400)


class InvalidPayloadError(AppError):
    """签名通过，但事件内容不是合法的 Stripe 事件"""

    def __init__(self, message: str = "Invalid webhook payload") -> None:
        super().__init__(code=400102, message=message, status_code=400)


class ConfigurationError(AppError):
    """
    服务端配置缺失

    missing 只用于日志，响应中只返回通用消息。
    """

    def __init__(self, missing: list[str]) -> None:
        super().__init__(code=500101, message="Server configuration error", status_code=500)
        self.missing = missing


class InfrastructureError(AppError):
    """依赖服务暂时失败，Stripe 会用同一事件重试"""

    def __init__(self, message: str = "Temporary processing failure") -> None:
        super().__init__(code=500201, message=message, status_code=500)
