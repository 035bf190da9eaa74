"""
FastAPI 依赖注入模块

webhook 处理所需的所有对象都在这里按请求构造并注入，
测试时可以通过 app.dependency_overrides 替换任意一层。

构造顺序：先检查必需配置，再打开数据库会话，最后组装处理器，
这样配置缺失会在任何校验和数据库访问之前返回 500。
"""
import logging
from collections.abc import Generator
from typing import Annotated

from fastapi import Depends
from sqlmodel import Session

from billing_sync.api.errors import ConfigurationError
from billing_sync.core.config import Settings, settings
from billing_sync.core.db import get_engine
from billing_sync.services.identity import (
    CustomerEmailLookup,
    IdentityResolver,
    SqlIdentityDirectory,
    StripeCustomerLookup,
)
from billing_sync.services.reconciler import SubscriptionReconciler
from billing_sync.services.signature import SignatureVerifier
from billing_sync.services.webhook_service import WebhookProcessor

logger = logging.getLogger(__name__)


def get_webhook_settings() -> Settings:
    """
    返回配置，并检查 webhook 必需配置

    Raises:
        ConfigurationError: 必需配置缺失时
    """
    try:
        settings.require_webhook_settings()
    except ConfigurationError as e:
        logger.error(f"[CONFIG] Missing required settings: {', '.join(e.missing)}")
        raise
    return settings


WebhookSettingsDep = Annotated[Settings, Depends(get_webhook_settings)]


def get_db() -> Generator[Session, None, None]:
    """
    获取数据库会话（依赖注入）

    使用 yield 确保会话在请求结束后自动关闭。
    """
    with Session(get_engine()) as session:
        yield session


SessionDep = Annotated[Session, Depends(get_db)]


def get_customer_lookup(config: WebhookSettingsDep) -> CustomerEmailLookup:
    return StripeCustomerLookup(
        api_key=config.STRIPE_SECRET_KEY or "",
        timeout=config.STRIPE_API_TIMEOUT_SECONDS,
    )


def get_webhook_processor(
    config: WebhookSettingsDep,
    session: SessionDep,
    customer_lookup: Annotated[CustomerEmailLookup, Depends(get_customer_lookup)],
) -> WebhookProcessor:
    """组装 webhook 处理器"""
    verifier = SignatureVerifier(
        webhook_secret=config.STRIPE_WEBHOOK_SECRET,
        tolerance=config.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
    )
    resolver = IdentityResolver(
        directory=SqlIdentityDirectory(session),
        customer_lookup=customer_lookup,
    )
    return WebhookProcessor(
        verifier=verifier,
        resolver=resolver,
        reconciler=SubscriptionReconciler(session),
    )


WebhookProcessorDep = Annotated[WebhookProcessor, Depends(get_webhook_processor)]
