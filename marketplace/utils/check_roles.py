# marketplace/utils/check_roles.py
from functools import wraps
from typing import Callable, Iterable

from fastapi import HTTPException

from marketplace.core.exceptions import PermissionDenied


def require_role(roles: Iterable[str]):
    """Route decorator; the route must take the caller as ``_user``."""
    allowed = {r.lower() for r in roles}

    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, _user, **kwargs):
            if _user is None:
                raise HTTPException(status_code=401, detail="User not authenticated")
            if _user.role.lower() not in allowed:
                raise PermissionDenied(f"Role '{_user.role}' may not perform this action", role=_user.role)
            return await func(*args, _user=_user, **kwargs)
        return wrapper
    return decorator
