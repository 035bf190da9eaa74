"""
数据库连接模块

管理数据库引擎的创建。引擎在第一次使用时才创建（而不是导入时），
这样缺少数据库配置只会让 webhook 请求返回配置错误，不会让应用启动失败。

重要提示：
- 数据库表结构通过 Alembic 迁移管理，不要在这里创建表
- 确保在使用前导入所有模型（billing_sync.models）
"""
import threading

from sqlalchemy import Engine
from sqlmodel import create_engine

from billing_sync.api.errors import ConfigurationError
from billing_sync.core.config import settings

_engine: Engine | None = None
_engine_lock = threading.Lock()


def build_engine(url: str) -> Engine:
    """
    创建数据库引擎（连接池）

    PostgreSQL 连接带上连接超时和语句超时，
    数据库卡住时请求会失败（可重试），而不是一直挂起。
    """
    connect_args: dict = {}
    if url.startswith("postgresql"):
        connect_args = {
            "connect_timeout": settings.DB_CONNECT_TIMEOUT_SECONDS,
            "options": f"-c statement_timeout={settings.DB_STATEMENT_TIMEOUT_MS}",
        }
    return create_engine(url, pool_pre_ping=True, connect_args=connect_args)


def get_engine() -> Engine:
    """
    获取全局数据库引擎（懒加载）

    Raises:
        ConfigurationError: 没有配置数据库地址时
    """
    global _engine
    if _engine is None:
        with _engine_lock:
            if _engine is None:
                url = settings.SQLALCHEMY_DATABASE_URI
                if not url:
                    raise ConfigurationError(["POSTGRES_SERVER"])
                _engine = build_engine(url)
    return _engine
