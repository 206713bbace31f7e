# marketplace/services/listing_service.py
from typing import Optional

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.exceptions import NotFoundError, ValidationError
from marketplace.models.listing_models import Listing
from marketplace.utils.activity_helpers import log_user_activity
from marketplace.utils.decimal_utils import normalize_currency, to_decimal


# -----------------------
# CREATE
# -----------------------
async def create_listing(db: AsyncSession, payload, _user) -> Listing:
    currency = normalize_currency(payload.currency)
    if payload.unit_price <= 0:
        raise ValidationError("Unit price must be greater than zero", field="unit_price")

    duplicate = await db.execute(
        select(Listing.id).where(Listing.seller_id == _user.id, Listing.seller_sku == payload.seller_sku)
    )
    if duplicate.scalar_one_or_none():
        raise ValidationError("You already have a listing with this SKU", field="seller_sku")

    data = payload.model_dump(exclude={"currency", "unit_price", "display_price", "category"})
    listing = Listing(
        **data,
        seller_id=_user.id,
        currency=currency,
        unit_price=to_decimal(payload.unit_price, currency),
        display_price=to_decimal(payload.display_price, currency) if payload.display_price is not None else None,
        category=payload.category.strip().lower() if payload.category else None,
    )
    db.add(listing)
    await db.flush()

    await log_user_activity(
        db=db,
        user_id=_user.id,
        username=_user.username,
        message=f"Listed {listing.seller_sku} '{listing.name}' at {listing.unit_price} {currency}",
    )

    await db.commit()
    await db.refresh(listing)
    return listing


# -----------------------
# READ
# -----------------------
async def list_listings(
    db: AsyncSession,
    seller_id: Optional[int] = None,
    category: Optional[str] = None,
    include_inactive: bool = False,
):
    filters = []
    if not include_inactive:
        filters.append(Listing.is_active == True)
    if seller_id is not None:
        filters.append(Listing.seller_id == seller_id)
    if category:
        filters.append(Listing.category == category.strip().lower())

    result = await db.execute(select(Listing).where(and_(*filters)).order_by(Listing.id))
    return result.scalars().all()


async def get_listing(db: AsyncSession, listing_id: int) -> Listing:
    result = await db.execute(select(Listing).where(Listing.id == listing_id))
    listing = result.scalar_one_or_none()
    if not listing:
        raise NotFoundError("Listing", listing_id)
    return listing


# -----------------------
# UPDATE
# -----------------------
async def update_listing(db: AsyncSession, listing_id: int, payload, _user) -> Listing:
    """Price changes affect future checkouts only; placed orders keep their item snapshot."""
    listing = await get_listing(db, listing_id)
    if listing.seller_id != _user.id and _user.role != "admin":
        raise NotFoundError("Listing", listing_id)

    update_data = payload.model_dump(exclude_unset=True)
    if "unit_price" in update_data:
        if update_data["unit_price"] is None or update_data["unit_price"] <= 0:
            raise ValidationError("Unit price must be greater than zero", field="unit_price")
        update_data["unit_price"] = to_decimal(update_data["unit_price"], listing.currency)
    if update_data.get("display_price") is not None:
        update_data["display_price"] = to_decimal(update_data["display_price"], listing.currency)
    if update_data.get("category"):
        update_data["category"] = update_data["category"].strip().lower()

    for key, value in update_data.items():
        setattr(listing, key, value)

    await log_user_activity(
        db=db,
        user_id=_user.id,
        username=_user.username,
        message=f"Updated listing {listing.seller_sku} (ID: {listing.id})",
    )

    await db.commit()
    await db.refresh(listing)
    return listing
