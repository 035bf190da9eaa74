"""
应用启动前检查脚本

在应用启动前等待数据库可用，并提示缺失的 webhook 配置。
主要用于 Docker Compose 环境，数据库容器可能还在初始化。

执行流程：
1. 检查 Stripe / 数据库配置，缺失时只记录错误（请求时会返回 500）
2. 不断重试连接数据库，直到成功或超时
"""
import logging

from sqlalchemy import Engine
from sqlmodel import Session, select
from tenacity import (
    after_log,
    before_log,
    retry,
    stop_after_attempt,
    wait_fixed,
)

from billing_sync.core.config import settings
from billing_sync.core.db import get_engine

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

max_tries = 60 * 5  # 最大尝试次数：300 次（5 分钟，每秒一次）
wait_seconds = 1


@retry(
    stop=stop_after_attempt(max_tries),
    wait=wait_fixed(wait_seconds),
    before=before_log(logger, logging.INFO),
    after=after_log(logger, logging.WARN),
)
def init(db_engine: Engine) -> None:
    """
    执行 select(1) 检查数据库是否已就绪，失败时由 tenacity 重试
    """
    try:
        with Session(db_engine) as session:
            session.exec(select(1))
    except Exception as e:
        logger.error(e)
        raise e


def main() -> None:
    logger.info("Initializing service")
    missing = settings.missing_webhook_settings()
    if missing:
        logger.error(f"Missing required settings: {', '.join(missing)}")
    init(get_engine())
    logger.info("Service finished initializing")


if __name__ == "__main__":  # pragma: no cover
    main()
