"""
订阅记录 CRUD 操作

所有写操作都是单条原子语句（原生 upsert / 条件 update），
并发或重复投递的事件由数据库按 user_id / provider_subscription_id 串行化，
进程内不加锁。

乱序保护：每次写入带上 Stripe 事件的 created 时间戳，
只有不早于记录中 last_event_created 的事件才会生效。
"""
from typing import Any

from sqlalchemy import ColumnElement, func, or_, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlmodel import Session, select

from billing_sync.enums import SubscriptionStatus
from billing_sync.models import Subscription, utc_now

# 支持原生 upsert 的方言
_INSERTS: dict[str, Any] = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _not_stale(event_created: int | None) -> ColumnElement[bool] | None:
    """记录没有时间戳，或事件不早于记录时才允许写入"""
    if event_created is None:
        return None
    column = Subscription.__table__.c.last_event_created
    return or_(column.is_(None), column <= event_created)


def get_by_user_id(*, session: Session, user_id: str) -> Subscription | None:
    statement = select(Subscription).where(Subscription.user_id == user_id)
    return session.exec(statement).first()


def get_by_subscription_id(*, session: Session, subscription_id: str) -> Subscription | None:
    statement = select(Subscription).where(
        Subscription.provider_subscription_id == subscription_id
    )
    return session.exec(statement).first()


def upsert_for_user(
    *,
    session: Session,
    user_id: str,
    provider_customer_id: str | None,
    provider_subscription_id: str | None,
    status: SubscriptionStatus,
    event_created: int | None = None,
) -> bool:
    """
    按 user_id 插入或更新订阅记录

    已有记录时覆盖客户 ID、订阅 ID、状态和更新时间；
    新值为空时保留原来的客户 ID / 订阅 ID。

    Returns:
        是否写入（事件比记录旧时返回 False）
    """
    dialect = session.get_bind().dialect.name
    insert = _INSERTS.get(dialect)
    if insert is None:
        raise NotImplementedError(f"Upsert not supported for dialect {dialect}")

    table = Subscription.__table__
    now = utc_now()
    stmt = insert(table).values(
        user_id=user_id,
        provider_customer_id=provider_customer_id,
        provider_subscription_id=provider_subscription_id,
        status=status.value,
        last_event_created=event_created,
        created_at=now,
        updated_at=now,
    )
    excluded = stmt.excluded
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.user_id],
        set_={
            "provider_customer_id": func.coalesce(
                excluded.provider_customer_id, table.c.provider_customer_id
            ),
            "provider_subscription_id": func.coalesce(
                excluded.provider_subscription_id, table.c.provider_subscription_id
            ),
            "status": excluded.status,
            "updated_at": excluded.updated_at,
            "last_event_created": func.coalesce(
                excluded.last_event_created, table.c.last_event_created
            ),
        },
        where=_not_stale(event_created),
    )
    result = session.exec(stmt)  # type: ignore[call-overload]
    session.commit()
    return result.rowcount > 0


def update_status_by_subscription_id(
    *,
    session: Session,
    subscription_id: str,
    status: SubscriptionStatus,
    event_created: int | None = None,
) -> int:
    """
    按 Stripe 订阅 ID 更新状态

    只修改 status / updated_at（以及 last_event_created），不会创建记录。

    Returns:
        受影响的行数
    """
    values: dict[str, Any] = {"status": status.value, "updated_at": utc_now()}
    if event_created is not None:
        values["last_event_created"] = event_created

    stmt = update(Subscription).where(
        Subscription.provider_subscription_id == subscription_id
    )
    guard = _not_stale(event_created)
    if guard is not None:
        stmt = stmt.where(guard)
    result = session.exec(stmt.values(**values))  # type: ignore[call-overload]
    session.commit()
    return result.rowcount
