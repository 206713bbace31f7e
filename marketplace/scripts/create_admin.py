# marketplace/scripts/create_admin.py
import asyncio
import logging
import os

from sqlalchemy import select

from marketplace.models.user_models import User
from marketplace.core.db import AsyncSessionLocal, init_models
from marketplace.core.security import hash_password

logger = logging.getLogger(__name__)


async def create_admin(username: str = "admin", password: str = "admin123") -> User:
    await init_models()
    async with AsyncSessionLocal() as session:
        existing = await session.execute(select(User).where(User.username == username))
        admin = existing.scalars().first()
        if admin:
            logger.info("Admin user %s already exists", username)
            return admin

        admin = User(
            username=username,
            password_hash=hash_password(password),
            role="admin",
            is_active=True
        )
        session.add(admin)
        await session.commit()
        logger.info("Admin user %s created", username)
        return admin


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(create_admin(
        os.getenv("ADMIN_USERNAME", "admin"),
        os.getenv("ADMIN_PASSWORD", "admin123"),
    ))
