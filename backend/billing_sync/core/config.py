"""
应用配置模块

使用 Pydantic Settings 管理所有环境变量和配置。
配置从项目根目录的 .env 文件读取，支持类型验证和默认值。

注意：Stripe 密钥和数据库连接信息在启动时允许缺失，
在处理 webhook 请求时才检查（见 require_webhook_settings），
缺失时返回 500 配置错误，而不是把请求当作未认证。
"""
import warnings  # 用于发出警告
from typing import Annotated, Any, Literal

from pydantic import (
    AnyUrl,
    BeforeValidator,
    HttpUrl,
    PostgresDsn,
    computed_field,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing_extensions import Self

from billing_sync.api.errors import ConfigurationError


def parse_cors(v: Any) -> list[str] | str:
    """
    解析 CORS 配置值

    支持两种格式：
    1. 逗号分隔的字符串："http://localhost:3000,http://localhost:3001"
    2. 列表格式：["http://localhost:3000", "http://localhost:3001"]

    Raises:
        ValueError: 当输入格式不正确时
    """
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",") if i.strip()]
    elif isinstance(v, list | str):
        return v
    raise ValueError(v)


class Settings(BaseSettings):
    """
    应用配置类

    配置来源优先级：
    1. 环境变量（最高优先级）
    2. .env 文件
    3. 代码中的默认值（最低优先级）
    """
    model_config = SettingsConfigDict(
        env_file="../.env",
        env_ignore_empty=True,  # 忽略空的环境变量
        extra="ignore",
    )
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    LOG_LEVEL: str = "INFO"

    BACKEND_CORS_ORIGINS: Annotated[
        list[AnyUrl] | str, BeforeValidator(parse_cors)
    ] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def all_cors_origins(self) -> list[str]:
        """CORS 允许的源（去除尾部斜杠）"""
        return [str(origin).rstrip("/") for origin in self.BACKEND_CORS_ORIGINS]

    PROJECT_NAME: str = "billing-sync"
    SENTRY_DSN: HttpUrl | None = None

    # 数据库（订阅记录存储 + 用户目录）
    # DATABASE_URL 优先；否则由 POSTGRES_* 拼接
    DATABASE_URL: str | None = None
    POSTGRES_SERVER: str | None = None
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str | None = None
    POSTGRES_DB: str = ""
    DB_CONNECT_TIMEOUT_SECONDS: int = 5  # 连接超时（秒）
    DB_STATEMENT_TIMEOUT_MS: int = 10_000  # 单条语句超时（毫秒）

    @computed_field  # type: ignore[prop-decorator]
    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str | None:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        if not self.POSTGRES_SERVER:
            return None
        return str(
            PostgresDsn.build(
                scheme="postgresql+psycopg",
                username=self.POSTGRES_USER,
                password=self.POSTGRES_PASSWORD,
                host=self.POSTGRES_SERVER,
                port=self.POSTGRES_PORT,
                path=self.POSTGRES_DB,
            )
        )

    # Stripe 配置
    STRIPE_SECRET_KEY: str | None = None  # API 密钥（sk_live_... / sk_test_...）
    STRIPE_WEBHOOK_SECRET: str | None = None  # Webhook 签名密钥（whsec_...）
    STRIPE_WEBHOOK_TOLERANCE_SECONDS: int = 300  # 签名时间窗口（5 分钟）
    STRIPE_API_TIMEOUT_SECONDS: float = 10.0  # Stripe API 请求超时

    def missing_webhook_settings(self) -> list[str]:
        """
        返回处理 webhook 所需但缺失的配置项名称

        需要：Stripe API 密钥、Webhook 签名密钥、数据库地址、数据库特权凭证。
        配置了 DATABASE_URL 时，数据库两项都视为已满足。
        """
        missing = []
        if not self.STRIPE_SECRET_KEY:
            missing.append("STRIPE_SECRET_KEY")
        if not self.STRIPE_WEBHOOK_SECRET:
            missing.append("STRIPE_WEBHOOK_SECRET")
        if not self.DATABASE_URL:
            if not self.POSTGRES_SERVER:
                missing.append("POSTGRES_SERVER")
            if not self.POSTGRES_PASSWORD:
                missing.append("POSTGRES_PASSWORD")
        return missing

    def require_webhook_settings(self) -> None:
        """
        检查 webhook 处理所需配置是否齐全

        Raises:
            ConfigurationError: 有任何必需配置缺失时
        """
        missing = self.missing_webhook_settings()
        if missing:
            raise ConfigurationError(missing)

    def _check_default_secret(self, var_name: str, value: str | None) -> None:
        """
        检查敏感配置是否使用了默认值 "changethis"

        本地环境只发出警告，其他环境直接报错。
        """
        if value == "changethis":
            message = (
                f'The value of {var_name} is "changethis", '
                "for security, please change it, at least for deployments."
            )
            if self.ENVIRONMENT == "local":
                warnings.warn(message, stacklevel=1)
            else:
                raise ValueError(message)

    @model_validator(mode="after")
    def _enforce_non_default_secrets(self) -> Self:
        self._check_default_secret("POSTGRES_PASSWORD", self.POSTGRES_PASSWORD)
        self._check_default_secret("STRIPE_WEBHOOK_SECRET", self.STRIPE_WEBHOOK_SECRET)
        return self


# 全局配置实例，整个应用共享
settings = Settings()  # type: ignore
