# marketplace/services/order_services/driver_service.py
import logging
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.exceptions import DriverUnavailable, NotFoundError, ValidationError
from marketplace.core.locks import driver_key, serialized_unit_of_work
from marketplace.models.driver_models import Driver, DriverStatus
from marketplace.utils.activity_helpers import log_user_activity
from marketplace.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)


# -----------------------
# CHECK-AND-SET
# -----------------------
async def claim_driver(db: AsyncSession, driver_id: int) -> Driver:
    """
    Flip the driver from AVAILABLE to BUSY in a single conditional UPDATE.

    Zero affected rows means somebody else got there first (or the driver
    was never available); the caller's unit of work is rolled back.
    """
    result = await db.execute(
        update(Driver)
        .where(Driver.id == driver_id, Driver.status == DriverStatus.AVAILABLE)
        .values(status=DriverStatus.BUSY, updated_at=utcnow())
    )
    if result.rowcount == 0:
        current = await db.execute(select(Driver.status).where(Driver.id == driver_id))
        status = current.scalar_one_or_none()
        if status is None:
            raise NotFoundError("Driver", driver_id)
        logger.warning("Dispatch refused: driver %s is %s", driver_id, status.value)
        raise DriverUnavailable(driver_id, status)

    driver = await _load_driver(db, driver_id)
    return driver


async def release_driver(db: AsyncSession, driver_id: Optional[int]) -> None:
    if driver_id is None:
        return
    await db.execute(
        update(Driver)
        .where(Driver.id == driver_id, Driver.status == DriverStatus.BUSY)
        .values(status=DriverStatus.AVAILABLE, updated_at=utcnow())
    )
    logger.info("Driver %s released", driver_id)


async def _load_driver(db: AsyncSession, driver_id: int) -> Driver:
    result = await db.execute(
        select(Driver).where(Driver.id == driver_id).execution_options(populate_existing=True)
    )
    driver = result.scalar_one_or_none()
    if not driver:
        raise NotFoundError("Driver", driver_id)
    return driver


# -----------------------
# CRUD
# -----------------------
async def create_driver(db: AsyncSession, payload, _user) -> Driver:
    driver = Driver(**payload.model_dump(), status=DriverStatus.AVAILABLE)
    db.add(driver)
    await db.flush()

    await log_user_activity(
        db=db,
        user_id=_user.id,
        username=_user.username,
        message=f"Registered driver {driver.first_name} {driver.last_name} (ID: {driver.id})",
    )

    await db.commit()
    await db.refresh(driver)
    return driver


async def list_drivers(db: AsyncSession, status: Optional[DriverStatus] = None) -> List[Driver]:
    query = select(Driver).order_by(Driver.first_name, Driver.last_name, Driver.id)
    if status is not None:
        query = query.where(Driver.status == status)
    result = await db.execute(query)
    return result.scalars().all()


async def get_driver(db: AsyncSession, driver_id: int) -> Driver:
    return await _load_driver(db, driver_id)


async def set_driver_status(db: AsyncSession, driver_id: int, status: DriverStatus, _user) -> Driver:
    if status == DriverStatus.BUSY:
        raise ValidationError("A driver becomes BUSY only through dispatch", field="status")

    async with serialized_unit_of_work(db, driver_key(driver_id)):
        driver = await _load_driver(db, driver_id)
        if driver.status == DriverStatus.BUSY:
            raise ValidationError("Driver is out on a delivery", field="status")
        driver.status = status
        await log_user_activity(
            db=db,
            user_id=_user.id,
            username=_user.username,
            message=f"Set driver {driver.id} status to {status.value}",
        )
        await db.flush()

    logger.info("Driver %s status set to %s", driver_id, status.value)
    return driver
