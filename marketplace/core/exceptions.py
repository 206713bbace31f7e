# marketplace/core/exceptions.py
"""
Domain error taxonomy.

Services raise these; the handler registered in ``main.py`` renders them as
``{"detail": ..., "error": ..., "context": {...}}`` with the class status code.
None of them are retried by the engine.
"""
import enum
from typing import Any, Dict


class MarketplaceError(Exception):
    status_code = 400
    error = "error"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = {k: v for k, v in context.items() if v is not None}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detail": self.message,
            "error": self.error,
            "context": {k: str(v) if not isinstance(v, (int, bool, str)) else v for k, v in self.context.items()},
        }


class ValidationError(MarketplaceError):
    status_code = 400
    error = "validation_error"

    def __init__(self, message: str, field: str | None = None, **context: Any):
        super().__init__(message, field=field, **context)
        self.field = field


class NotFoundError(MarketplaceError):
    status_code = 404
    error = "not_found"

    def __init__(self, resource: str, resource_id: Any = None):
        super().__init__(f"{resource} not found", resource=resource, id=resource_id)
        self.resource = resource
        self.resource_id = resource_id


class PermissionDenied(MarketplaceError):
    status_code = 403
    error = "permission_denied"


class InvalidTransition(MarketplaceError):
    status_code = 409
    error = "invalid_transition"

    def __init__(self, current_status, target_status, message: str | None = None):
        current = getattr(current_status, "value", current_status)
        target = getattr(target_status, "value", target_status)
        super().__init__(
            message or f"Cannot move order from {current} to {target}",
            current_status=current,
            target_status=target,
        )
        self.current_status = current_status
        self.target_status = target_status


class OverpaymentError(MarketplaceError):
    status_code = 409
    error = "overpayment"

    def __init__(self, amount, remaining, message: str | None = None):
        super().__init__(
            message or f"Payment exceeds remaining balance. Remaining: {remaining}, attempted: {amount}",
            amount=amount,
            remaining=remaining,
        )
        self.amount = amount
        self.remaining = remaining


class DriverUnavailable(MarketplaceError):
    status_code = 409
    error = "driver_unavailable"

    def __init__(self, driver_id: int, driver_status=None):
        status = getattr(driver_status, "value", driver_status)
        super().__init__(
            f"Driver {driver_id} is not available" + (f" (status: {status})" if status else ""),
            driver_id=driver_id,
            driver_status=status,
        )
        self.driver_id = driver_id
        self.driver_status = driver_status


class CouponErrorReason(str, enum.Enum):
    NOT_FOUND = "NOT_FOUND"
    EXPIRED = "EXPIRED"
    BELOW_MINIMUM = "BELOW_MINIMUM"
    PRODUCT_MISMATCH = "PRODUCT_MISMATCH"
    USAGE_LIMIT_EXCEEDED = "USAGE_LIMIT_EXCEEDED"


_COUPON_MESSAGES = {
    CouponErrorReason.NOT_FOUND: "Coupon code is invalid or inactive",
    CouponErrorReason.EXPIRED: "Coupon is not valid at this time",
    CouponErrorReason.BELOW_MINIMUM: "Order subtotal is below the coupon minimum",
    CouponErrorReason.PRODUCT_MISMATCH: "Coupon does not apply to any product in this order",
    CouponErrorReason.USAGE_LIMIT_EXCEEDED: "Coupon usage limit reached",
}


class CouponError(MarketplaceError):
    status_code = 400

    def __init__(self, reason: CouponErrorReason, code: str | None = None, message: str | None = None):
        super().__init__(message or _COUPON_MESSAGES[reason], reason=reason.value, code=code)
        self.reason = reason
        self.code = code

    @property
    def error(self) -> str:  # type: ignore[override]
        return f"coupon_{self.reason.value.lower()}"


class ConcurrencyConflict(MarketplaceError):
    status_code = 409
    error = "concurrency_conflict"

    def __init__(self, resource: str, resource_id: Any = None, message: str | None = None):
        super().__init__(
            message or f"{resource} was modified concurrently, please retry",
            resource=resource,
            id=resource_id,
        )
        self.resource = resource
        self.resource_id = resource_id
