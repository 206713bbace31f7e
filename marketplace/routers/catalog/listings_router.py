# marketplace/routers/catalog/listings_router.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.db import get_db
from marketplace.schemas.listing_schemas import ListingCreate, ListingUpdate, ListingOut
from marketplace.services.listing_service import create_listing, list_listings, get_listing, update_listing
from marketplace.utils.check_roles import require_role
from marketplace.utils.get_user import get_current_user

router = APIRouter(prefix="/listings", tags=["Listings"])


@router.post("", response_model=ListingOut, status_code=status.HTTP_201_CREATED)
@require_role(["seller", "admin"])
async def route_create_listing(
    payload: ListingCreate,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    return await create_listing(db, payload, _user)


@router.get("", response_model=List[ListingOut])
async def route_list_listings(
    seller_id: Optional[int] = Query(None),
    category: Optional[str] = Query(None),
    include_inactive: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    # only sellers and admins get to see delisted items
    show_inactive = include_inactive and _user.role in ("seller", "admin")
    return await list_listings(db, seller_id=seller_id, category=category, include_inactive=show_inactive)


@router.get("/{listing_id}", response_model=ListingOut)
async def route_get_listing(listing_id: int, db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    return await get_listing(db, listing_id)


@router.put("/{listing_id}", response_model=ListingOut)
@require_role(["seller", "admin"])
async def route_update_listing(
    listing_id: int,
    payload: ListingUpdate,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    return await update_listing(db, listing_id, payload, _user)
