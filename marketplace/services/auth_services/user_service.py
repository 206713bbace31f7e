# marketplace/services/auth_services/user_service.py
import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from fastapi import HTTPException

from marketplace.models.user_models import User, ALLOWED_ROLES
from marketplace.core.security import hash_password
from marketplace.schemas.user_schemas import UserCreate, UserUpdate, UserRegister
from marketplace.utils.activity_helpers import log_user_activity

logger = logging.getLogger(__name__)

SELF_SERVICE_ROLES = {"buyer", "seller"}
MIN_PASSWORD_LENGTH = 6


async def _check_new_user(db: AsyncSession, username: str, password: str, role: str, allowed: set):
    existing = await db.execute(select(User).where(User.username == username))
    if existing.scalars().first():
        raise HTTPException(status_code=400, detail="Username already exists")

    if role not in allowed:
        raise HTTPException(status_code=400, detail=f"Role must be one of {sorted(allowed)}")

    if len(password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(status_code=400, detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters")


# ---------------------------
# CREATE USER
# ---------------------------
async def create_user(db: AsyncSession, user_data: UserCreate, current_user):
    """
    Create a new user and log the activity in a single transaction.
    """
    try:
        role = user_data.role.lower()
        await _check_new_user(db, user_data.username, user_data.password, role, ALLOWED_ROLES)

        new_user = User(
            username=user_data.username,
            password_hash=hash_password(user_data.password),
            role=role,
            business_name=user_data.business_name,
        )
        db.add(new_user)
        await db.flush()  # ensures new_user.id is available

        if current_user:
            await log_user_activity(
                db,
                user_id=current_user.id,
                username=current_user.username,
                message=(
                    f"{current_user.role.capitalize()} created {new_user.role} "
                    f"with username {new_user.username} and user id {new_user.id}"
                )
            )

        # user + activity are persisted atomically
        await db.commit()
        await db.refresh(new_user)
        return new_user

    except HTTPException:
        await db.rollback()
        raise


# ---------------------------
# SELF REGISTRATION
# ---------------------------
async def register_user(db: AsyncSession, user_data: UserRegister):
    role = user_data.role.lower()
    try:
        await _check_new_user(db, user_data.username, user_data.password, role, SELF_SERVICE_ROLES)
        if role == "seller" and not (user_data.business_name or "").strip():
            raise HTTPException(status_code=400, detail="Sellers must provide a business name")

        new_user = User(
            username=user_data.username,
            password_hash=hash_password(user_data.password),
            role=role,
            business_name=user_data.business_name,
        )
        db.add(new_user)
        await db.flush()

        await log_user_activity(
            db,
            user_id=new_user.id,
            username=new_user.username,
            message=f"Registered as {role}",
        )
        await db.commit()
        await db.refresh(new_user)
    except HTTPException:
        await db.rollback()
        raise

    logger.info("New %s registered: %s", role, new_user.username)
    return new_user


# ---------------------------
# LIST ALL USERS
# ---------------------------
async def list_users(db: AsyncSession, role: str | None = None):
    stmt = select(User).order_by(User.id)
    if role:
        stmt = stmt.where(User.role == role.lower())
    result = await db.execute(stmt)
    return result.scalars().all()


# ---------------------------
# GET USER BY ID
# ---------------------------
async def get_user_by_id(db: AsyncSession, user_id: int):
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalars().first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


# ---------------------------
# UPDATE USER
# ---------------------------
async def update_user(db: AsyncSession, user_id: int, user_data: UserUpdate, current_user):
    """
    Update a user and log a descriptive message.
    """
    target_user = await get_user_by_id(db, user_id)
    changes = []

    if user_data.username:
        existing_user_check = await db.execute(
            select(User).where(User.username == user_data.username, User.id != user_id)
        )
        if existing_user_check.scalars().first():
            raise HTTPException(status_code=400, detail="Username already exists")
        changes.append(f"username to {user_data.username}")
        target_user.username = user_data.username

    if user_data.password:
        if len(user_data.password) < MIN_PASSWORD_LENGTH:
            raise HTTPException(status_code=400, detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        target_user.password_hash = hash_password(user_data.password)
        # outstanding tokens die with the old password
        target_user.token_version += 1
        changes.append("password")

    if user_data.role:
        role = user_data.role.lower()
        if role not in ALLOWED_ROLES:
            raise HTTPException(status_code=400, detail=f"Role must be one of {sorted(ALLOWED_ROLES)}")
        changes.append(f"role to {role}")
        target_user.role = role

    if user_data.business_name is not None:
        changes.append("business name")
        target_user.business_name = user_data.business_name

    if current_user and changes:
        await log_user_activity(
            db,
            user_id=current_user.id,
            username=current_user.username,
            message=f"{current_user.role.capitalize()} updated {target_user.role} "
                    f"with username {target_user.username}: {', '.join(changes)}"
        )

    await db.commit()
    await db.refresh(target_user)
    return target_user


# ---------------------------
# DELETE USER
# ---------------------------
async def delete_user(db: AsyncSession, user_id: int, current_user):
    """
    Soft-delete (deactivate) a user and log a descriptive message.
    """
    target_user = await get_user_by_id(db, user_id)
    if current_user and target_user.id == current_user.id:
        raise HTTPException(status_code=400, detail="You cannot deactivate your own account")

    target_user.is_active = False
    target_user.token_version += 1

    if current_user:
        await log_user_activity(
            db,
            user_id=current_user.id,
            username=current_user.username,
            message=f"{current_user.role.capitalize()} deactivated {target_user.role} "
                    f"with username {target_user.username}"
        )

    await db.commit()
    await db.refresh(target_user)
    return target_user
