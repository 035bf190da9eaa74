"""
用户身份解析

把 Stripe 提供的标识（client_reference_id、邮箱、客户 ID）映射到本系统的用户。

解析顺序：
1. client_reference_id：创建 checkout 时传入的用户 ID，最可靠
2. checkout 中的邮箱（精确匹配，区分大小写）
3. 没有邮箱但有客户 ID 时，调用 Stripe API 获取客户邮箱，再按 2 匹配

"找不到用户"返回 None，是终态（重试也不会变）；
目录或 Stripe API 故障抛出 InfrastructureError，让 Stripe 重投。
"""

import logging
from typing import Protocol

import stripe
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from billing_sync.api.errors import InfrastructureError
from billing_sync.crud import user as user_crud
from billing_sync.models import User
from billing_sync.services.events import SessionCompleted

logger = logging.getLogger(__name__)


class IdentityDirectory(Protocol):
    """用户目录接口：按 ID 或邮箱单次查询，最多返回一个用户"""

    def get_by_id(self, user_id: str) -> User | None: ...

    def get_by_email(self, email: str) -> User | None: ...


class CustomerEmailLookup(Protocol):
    """根据 Stripe 客户 ID 获取邮箱"""

    def get_email(self, customer_id: str) -> str | None: ...


class SqlIdentityDirectory:
    """基于 users 表的用户目录"""

    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, user_id: str) -> User | None:
        try:
            return user_crud.get_by_id(session=self.session, user_id=user_id)
        except SQLAlchemyError as e:
            logger.error(f"User directory lookup by id failed: {e}")
            raise InfrastructureError("User directory unavailable")

    def get_by_email(self, email: str) -> User | None:
        try:
            return user_crud.get_by_email(session=self.session, email=email)
        except SQLAlchemyError as e:
            logger.error(f"User directory lookup by email failed: {type(e).__name__}")
            raise InfrastructureError("User directory unavailable")


class StripeCustomerLookup:
    """通过 Stripe API 查询客户邮箱"""

    def __init__(self, api_key: str, timeout: float = 10.0):
        """
        Args:
            api_key: Stripe API 密钥
            timeout: 单次请求超时（秒）
        """
        self.client = stripe.StripeClient(
            api_key,
            http_client=stripe.RequestsClient(timeout=timeout),
            max_network_retries=0,
        )

    def get_email(self, customer_id: str) -> str | None:
        try:
            customer = self.client.customers.retrieve(customer_id)
        except stripe.InvalidRequestError as e:
            if e.http_status == 404:
                logger.info(f"Stripe customer {customer_id} not found")
                return None
            logger.error(f"Stripe customer lookup failed: {e}")
            raise InfrastructureError("Payment provider unavailable")
        except stripe.StripeError as e:
            logger.error(f"Stripe customer lookup failed: {e}")
            raise InfrastructureError("Payment provider unavailable")

        if getattr(customer, "deleted", False):
            return None
        return getattr(customer, "email", None) or None


class IdentityResolver:
    """把 checkout 事件解析为用户"""

    def __init__(
        self,
        directory: IdentityDirectory,
        customer_lookup: CustomerEmailLookup | None = None,
    ):
        self.directory = directory
        self.customer_lookup = customer_lookup

    def resolve_email(self, email: str) -> User | None:
        return self.directory.get_by_email(email)

    def resolve(self, event: SessionCompleted) -> User | None:
        """
        解析 checkout 事件对应的用户

        Returns:
            匹配到的用户，找不到返回 None

        Raises:
            InfrastructureError: 用户目录或 Stripe API 暂时不可用
        """
        if event.client_reference_id:
            user = self.directory.get_by_id(event.client_reference_id)
            if user:
                return user
            logger.info(
                f"[WEBHOOK] client_reference_id {event.client_reference_id} not found, trying email"
            )

        email = event.customer_email
        if not email and event.provider_customer_id and self.customer_lookup:
            email = self.customer_lookup.get_email(event.provider_customer_id)

        if not email:
            return None
        return self.resolve_email(email)
