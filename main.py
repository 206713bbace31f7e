# main.py
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from marketplace.core.config import LOG_LEVEL
from marketplace.core.db import init_models
from marketplace.core.exceptions import MarketplaceError
from marketplace.middleware.activity_logger import ActivityLoggerMiddleware
from marketplace.routers import auth
from marketplace.routers import catalog
from marketplace.routers import orders
from marketplace.routers import staff

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("marketplace")

app = FastAPI(
    title="Marketplace Orders API",
    description="FastAPI backend for marketplace orders, payments, dispatch and payroll",
    version="0.1.0"
)
# CORS setup
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # adjust for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(ActivityLoggerMiddleware)


@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    if exc.status_code >= 409:
        logger.warning("%s %s -> %s: %s", request.method, request.url.path, exc.error, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Health check endpoint
@app.get("/", tags=["Health"])
async def health_check():
    return {"status": "ok", "message": "Backend is running"}

# Register routers
app.include_router(auth.router)
app.include_router(catalog.router)
app.include_router(orders.router)
app.include_router(staff.router)


@app.on_event("startup")
async def on_startup():
    await init_models()
