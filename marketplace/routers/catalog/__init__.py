from fastapi import APIRouter

from .addresses_router import router as addresses_router
from .listings_router import router as listings_router

router = APIRouter()

router.include_router(addresses_router)
router.include_router(listings_router)
