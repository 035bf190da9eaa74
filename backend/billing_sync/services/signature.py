"""
Stripe Webhook 签名校验

文档: https://docs.stripe.com/webhooks#verify-events

Stripe-Signature 头部格式: t=<unix 时间戳>,v1=<签名>[,v1=<签名>...]
签名为 HMAC-SHA256(secret, "<t>.<原始请求体>")。

必须对原始字节校验：把 JSON 解析后再序列化得到的内容和原始请求体不一定相同，
所以校验放在任何解析之前。
"""

import logging

import stripe

from billing_sync.api.errors import ConfigurationError, WebhookSignatureError

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE_SECONDS = 300


class SignatureVerifier:
    """Stripe webhook 签名校验器"""

    def __init__(self, webhook_secret: str | None, tolerance: int = DEFAULT_TOLERANCE_SECONDS):
        """
        Args:
            webhook_secret: Webhook 签名密钥（whsec_...）
            tolerance: 允许的签名时间偏差（秒），超出视为重放
        """
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance

    def verify(self, payload: bytes, signature: str | None) -> bytes:
        """
        校验请求体签名

        Args:
            payload: 请求体原始字节
            signature: Stripe-Signature 头部值

        Returns:
            校验通过的原始字节

        Raises:
            ConfigurationError: 未配置签名密钥
            WebhookSignatureError: 签名缺失、格式错误、不匹配或已过期
        """
        if not self.webhook_secret:
            # 缺少密钥是服务端问题，不能当作"不校验"放行
            raise ConfigurationError(["STRIPE_WEBHOOK_SECRET"])

        if not signature:
            logger.warning("[WEBHOOK] Missing Stripe-Signature header")
            raise WebhookSignatureError("Missing stripe-signature header")

        try:
            text = payload.decode("utf-8")
        except UnicodeDecodeError:
            logger.warning("[WEBHOOK] Payload is not valid UTF-8")
            raise WebhookSignatureError()

        try:
            stripe.WebhookSignature.verify_header(
                text, signature, self.webhook_secret, tolerance=self.tolerance
            )
        except stripe.SignatureVerificationError as e:
            logger.warning(f"[WEBHOOK] Invalid signature: {e}")
            raise WebhookSignatureError()

        return payload
