# marketplace/services/address_service.py
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.models.address_models import Address
from marketplace.utils.activity_helpers import log_user_activity


async def list_addresses(db: AsyncSession, _user):
    result = await db.execute(
        select(Address).where(Address.buyer_id == _user.id).order_by(Address.is_default.desc(), Address.id)
    )
    return result.scalars().all()


async def create_address(db: AsyncSession, payload, _user) -> Address:
    existing = await list_addresses(db, _user)
    # the first address becomes the default
    make_default = payload.is_default or not existing
    if make_default and existing:
        await db.execute(
            update(Address).where(Address.buyer_id == _user.id).values(is_default=False)
        )

    address = Address(**payload.model_dump(exclude={"is_default"}), buyer_id=_user.id, is_default=make_default)
    db.add(address)
    await db.flush()

    await log_user_activity(
        db=db,
        user_id=_user.id,
        username=_user.username,
        message=f"Added shipping address in {address.city}, {address.province}",
    )

    await db.commit()
    await db.refresh(address)
    return address
