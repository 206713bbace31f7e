from fastapi import APIRouter

from .staff_router import router as staff_router

router = APIRouter()

router.include_router(staff_router)
