# marketplace/services/auth_services/activity_service.py
import math
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import and_, asc, desc, func, select, true
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.models.activity_models import UserActivity
from marketplace.utils.datetime_utils import as_utc

SORTABLE = {"id", "user_id", "username", "created_at"}


async def get_user_activities(
    db: AsyncSession,
    user_id: Optional[int] = None,
    username: Optional[str] = None,
    search: Optional[str] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    page: int = 1,
    limit: int = 20,
    sort_by: str = "created_at",
    order: str = "desc",
) -> Tuple[List[UserActivity], dict]:
    """
    Audit trail query. ``search`` matches inside the message, which is how an
    order number, coupon code or payroll period is looked up.
    """
    filters = []
    if user_id:
        filters.append(UserActivity.user_id == user_id)
    if username:
        filters.append(UserActivity.username.ilike(f"%{username}%"))
    if search:
        filters.append(UserActivity.message.ilike(f"%{search}%"))
    if since:
        filters.append(UserActivity.created_at >= as_utc(since))
    if until:
        filters.append(UserActivity.created_at <= as_utc(until))
    where = and_(*filters) if filters else true()

    column = getattr(UserActivity, sort_by if sort_by in SORTABLE else "created_at")
    direction = asc if order.lower() == "asc" else desc

    total = (await db.execute(select(func.count(UserActivity.id)).where(where))).scalar() or 0
    result = await db.execute(
        select(UserActivity)
        .where(where)
        .order_by(direction(column), direction(UserActivity.id))
        .offset((page - 1) * limit)
        .limit(limit)
    )
    pagination = {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit) if total else 0}
    return result.scalars().all(), pagination
