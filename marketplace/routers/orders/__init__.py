from fastapi import APIRouter

from .orders_router import router as orders_router
from .payments_router import router as payments_router
from .coupons_router import router as coupons_router
from .drivers_router import router as drivers_router
from .commission_router import router as commission_router

router = APIRouter()

router.include_router(orders_router)
router.include_router(payments_router)
router.include_router(coupons_router)
router.include_router(drivers_router)
router.include_router(commission_router)
