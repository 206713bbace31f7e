# marketplace/middleware/activity_logger.py
import logging

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware

from marketplace.utils.activity_helpers import log_user_activity
from marketplace.core.db import get_db

logger = logging.getLogger(__name__)

AUDITED_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


class ActivityLoggerMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        # set by the auth dependency
        user_id = getattr(request.state, "user_id", None)
        username = getattr(request.state, "username", None)

        if user_id and request.method in AUDITED_METHODS:
            message = f"Performed {request.method} on {request.url.path} ({response.status_code})"

            if hasattr(response, "activity_message"):
                message = response.activity_message

            try:
                async for db in get_db():
                    await log_user_activity(db, user_id=user_id, username=username, message=message, commit=True)
            except SQLAlchemyError:
                logger.exception("Failed to log activity for %s %s", request.method, request.url.path)

        return response
