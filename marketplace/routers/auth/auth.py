# marketplace/routers/auth/auth.py
from fastapi import APIRouter, Depends, Body, status
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.db import get_db
from marketplace.schemas.user_schemas import UserLogin, UserRegister, TokenResponse, UserResponse, MessageResponse
from marketplace.services.auth_services.auth_service import (
    authenticate_user, create_tokens, refresh_access_token, logout_user
)
from marketplace.services.auth_services.user_service import register_user
from marketplace.utils.get_user import get_current_user

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(data: UserRegister, db: AsyncSession = Depends(get_db)):
    """
    Self-service sign-up for buyers and sellers. Admins are created by admins.
    """
    user = await register_user(db, data)
    return {"msg": f"User '{user.username}' registered successfully.", "data": user}


@router.post("/login", response_model=TokenResponse)
async def login(data: UserLogin, db: AsyncSession = Depends(get_db)):
    user = await authenticate_user(db, data.username, data.password)
    access_token, refresh_token = await create_tokens(db, user)
    return TokenResponse(access_token=access_token, refresh_token=refresh_token)


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token_endpoint(refresh_token: str = Body(..., embed=True), db: AsyncSession = Depends(get_db)):
    """
    Exchange a refresh token for a new access token.
    """
    new_token_data = await refresh_access_token(db, refresh_token)
    return TokenResponse(**new_token_data)


@router.post("/logout", response_model=MessageResponse)
async def logout(db: AsyncSession = Depends(get_db), current_user=Depends(get_current_user)):
    """
    Logs out the user by invalidating their refresh tokens.
    """
    return await logout_user(db, current_user.username)
