# marketplace/routers/auth/activity_router.py
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.db import get_db
from marketplace.schemas.activity_schemas import ActivityListResponse
from marketplace.services.auth_services.activity_service import get_user_activities
from marketplace.utils.check_roles import require_role
from marketplace.utils.get_user import get_current_user

router = APIRouter(prefix="/activities", tags=["Activity Log"])


@router.get("", response_model=ActivityListResponse)
@require_role(["admin"])
async def list_user_activities(
    user_id: Optional[int] = Query(None),
    username: Optional[str] = Query(None),
    search: Optional[str] = Query(None, description="Text inside the message, e.g. an order number"),
    since: Optional[datetime] = Query(None),
    until: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sort_by: str = Query("created_at"),
    order: str = Query("desc"),
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    activities, pagination = await get_user_activities(
        db,
        user_id=user_id,
        username=username,
        search=search,
        since=since,
        until=until,
        page=page,
        limit=limit,
        sort_by=sort_by,
        order=order,
    )
    return {"activities": activities, "pagination": pagination}
