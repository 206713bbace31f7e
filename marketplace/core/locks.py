# marketplace/core/locks.py
"""
Per-entity serialization.

Every mutation of an order (and every driver / coupon check-and-set) runs
inside ``serialized_unit_of_work``: an in-process keyed ``asyncio.Lock``
queues contenders for the same key, the body loads rows ``FOR UPDATE``
(row lock on Postgres) and the ``Order.version`` column rejects writers
holding a stale copy. The unit either commits once or rolls back entirely.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from marketplace.core.exceptions import ConcurrencyConflict

logger = logging.getLogger(__name__)


def order_key(order_id: int) -> str:
    return f"order:{order_id}"


def driver_key(driver_id: int) -> str:
    return f"driver:{driver_id}"


def coupon_key(code: str) -> str:
    return f"coupon:{code.upper()}"


def payroll_key(seller_id: int) -> str:
    return f"payroll:{seller_id}"


class KeyedLockRegistry:
    """Lazily created asyncio locks, dropped again once nobody holds or waits on them."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    def _checkout(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        return lock

    def _checkin(self, key: str) -> None:
        remaining = self._users.get(key, 1) - 1
        if remaining <= 0:
            self._users.pop(key, None)
            self._locks.pop(key, None)
        else:
            self._users[key] = remaining

    @asynccontextmanager
    async def hold(self, *keys: str) -> AsyncIterator[None]:
        # sorted acquisition order keeps two multi-key holders from deadlocking
        ordered = sorted({k for k in keys if k})
        held = []
        try:
            for key in ordered:
                lock = self._checkout(key)
                try:
                    await lock.acquire()
                except BaseException:
                    self._checkin(key)
                    raise
                held.append((key, lock))
            yield
        finally:
            for key, lock in reversed(held):
                lock.release()
                self._checkin(key)

    def __len__(self) -> int:
        return len(self._locks)


entity_locks = KeyedLockRegistry()


@asynccontextmanager
async def serialized_unit_of_work(db: AsyncSession, *keys: str) -> AsyncIterator[AsyncSession]:
    """Hold ``keys``, run the body, commit once; roll back on any failure."""
    async with entity_locks.hold(*keys):
        try:
            yield db
            await db.commit()
        except StaleDataError as e:
            await db.rollback()
            logger.warning("Stale write rejected for %s", ", ".join(keys) or "<unkeyed>")
            raise ConcurrencyConflict("order", message="Record was modified concurrently, please retry") from e
        except IntegrityError as e:
            await db.rollback()
            logger.warning("Integrity conflict for %s: %s", ", ".join(keys) or "<unkeyed>", e.orig)
            raise ConcurrencyConflict("record", message="Conflicting write, please retry") from e
        except BaseException:
            await db.rollback()
            raise
