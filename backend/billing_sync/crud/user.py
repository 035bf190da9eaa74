"""用户目录查询（只读）"""
import logging

from sqlmodel import Session, select

from billing_sync.models import User

logger = logging.getLogger(__name__)


def get_by_id(*, session: Session, user_id: str) -> User | None:
    """根据用户 ID 查询用户"""
    return session.get(User, user_id)


def get_by_email(*, session: Session, email: str) -> User | None:
    """
    根据邮箱查询用户

    精确匹配，区分大小写。同一邮箱存在多个用户时返回最早创建的一个。
    """
    statement = (
        select(User)
        .where(User.email == email)
        .order_by(User.created_at, User.id)
        .limit(2)
    )
    users = session.exec(statement).all()
    if len(users) > 1:
        logger.warning(f"Multiple users share one email ({users[0].id}, {users[1].id}), using {users[0].id}")
    return users[0] if users else None
