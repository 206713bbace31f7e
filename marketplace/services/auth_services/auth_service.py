# marketplace/services/auth_services/auth_service.py
import logging
from datetime import timedelta
from typing import Dict

from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import update

from marketplace.models.user_models import User, RefreshToken
from marketplace.core.security import (
    verify_password,
    create_access_token,
    create_refresh_token,
    decode_token,
)
from marketplace.core.config import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    REFRESH_TOKEN_EXPIRE_DAYS,
    ADMIN_ACCESS_TOKEN_EXPIRE_MINUTES,
)
from marketplace.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)


def _access_token_for(user: User) -> str:
    expire_minutes = (
        ADMIN_ACCESS_TOKEN_EXPIRE_MINUTES
        if user.role == "admin"
        else ACCESS_TOKEN_EXPIRE_MINUTES
    )
    return create_access_token(
        {"sub": user.username, "user_id": user.id, "role": user.role},
        token_version=user.token_version,
        expires_delta=timedelta(minutes=expire_minutes),
    )


async def authenticate_user(db: AsyncSession, username: str, password: str) -> User:
    result = await db.execute(select(User).where(User.username == username))
    user = result.scalars().first()
    if not user or not verify_password(password, user.password_hash):
        logger.warning("Failed login for %s", username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials"
        )
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is inactive.")
    return user


async def create_tokens(db: AsyncSession, user: User):
    """
    Create new access and refresh tokens.
    Includes token_version to support immediate logout invalidation.
    """
    access_token = _access_token_for(user)
    refresh_token = create_refresh_token(
        {"sub": user.username, "user_id": user.id},
        expires_delta=timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS),
    )

    db.add(RefreshToken(user_id=user.id, token=refresh_token))
    user.last_login = utcnow()
    user.is_online = True
    await db.commit()
    await db.refresh(user)

    logger.info("User %s logged in", user.username)
    return access_token, refresh_token


async def refresh_access_token(db: AsyncSession, old_refresh_token: str) -> Dict:
    """
    Rotate refresh token: must find the DB record and ensure it is not revoked.
    Marks old token revoked and issues a new refresh token record.
    """
    try:
        payload = decode_token(old_refresh_token)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired refresh token",
        )

    if payload.get("type") != "refresh":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token type"
        )

    result = await db.execute(
        select(RefreshToken).where(RefreshToken.token == old_refresh_token)
    )
    db_token = result.scalars().first()

    if not db_token or db_token.revoked:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or reused refresh token",
        )

    user = db_token.user
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is inactive.")

    db_token.revoked = True

    new_access_token = _access_token_for(user)
    new_refresh_token_str = create_refresh_token({"sub": user.username, "user_id": user.id})
    db.add(RefreshToken(user_id=user.id, token=new_refresh_token_str))
    await db.commit()

    return {
        "access_token": new_access_token,
        "refresh_token": new_refresh_token_str,
        "token_type": "bearer",
    }


async def logout_user(db: AsyncSession, username: str):
    result = await db.execute(select(User).where(User.username == username))
    user = result.scalars().first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    user.token_version += 1
    user.is_online = False

    await db.execute(
        update(RefreshToken)
        .where(RefreshToken.user_id == user.id)
        .values(revoked=True)
    )

    await db.commit()
    logger.info("User %s logged out", username)

    return {"msg": "Logged out successfully"}
