# marketplace/routers/catalog/addresses_router.py
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.db import get_db
from marketplace.schemas.address_schemas import AddressCreate, AddressOut
from marketplace.services.address_service import create_address, list_addresses
from marketplace.utils.check_roles import require_role
from marketplace.utils.get_user import get_current_user

router = APIRouter(prefix="/addresses", tags=["Addresses"])


@router.get("", response_model=List[AddressOut])
@require_role(["buyer"])
async def route_list_addresses(db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    return await list_addresses(db, _user)


@router.post("", response_model=AddressOut, status_code=status.HTTP_201_CREATED)
@require_role(["buyer"])
async def route_create_address(
    payload: AddressCreate,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    return await create_address(db, payload, _user)
