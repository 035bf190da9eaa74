"""CRUD 操作模块"""
from .subscription import (
    get_by_subscription_id as get_subscription_by_subscription_id,
)
from .subscription import (
    get_by_user_id as get_subscription_by_user_id,
)
from .subscription import (
    update_status_by_subscription_id as update_subscription_status,
)
from .subscription import (
    upsert_for_user as upsert_subscription,
)
from .user import (
    get_by_email as get_user_by_email,
)
from .user import (
    get_by_id as get_user_by_id,
)

__all__ = [
    "get_subscription_by_subscription_id",
    "get_subscription_by_user_id",
    "update_subscription_status",
    "upsert_subscription",
    "get_user_by_email",
    "get_user_by_id",
]
