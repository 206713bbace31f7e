# marketplace/utils/decimal_utils.py
"""
Ledger-safe money helpers.

All amounts are ``decimal.Decimal`` quantised to the minor unit of their
ISO 4217 currency. Floats are only accepted through ``str()`` so that
``0.1`` becomes ``Decimal("0.1")`` and not its binary approximation.
"""
import re
from decimal import Decimal, InvalidOperation, ROUND_DOWN, ROUND_HALF_UP
from typing import Iterable

from marketplace.core.exceptions import ValidationError

ZERO = Decimal("0")

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")

# ISO 4217 currencies without a minor unit. Money columns are NUMERIC(14, 2),
# so three-decimal currencies (BHD, KWD, ...) are rejected.
_ZERO_DECIMAL_CURRENCIES = {"JPY", "KRW", "VND", "CLP", "ISK", "UGX", "XAF", "XOF"}
_THREE_DECIMAL_CURRENCIES = {"BHD", "IQD", "JOD", "KWD", "LYD", "OMR", "TND"}


def normalize_currency(currency: str) -> str:
    code = (currency or "").strip().upper()
    if not _CURRENCY_RE.match(code):
        raise ValidationError(f"Invalid currency code: {currency!r}", field="currency")
    return code


def minor_unit_exponent(currency: str = "USD") -> int:
    code = normalize_currency(currency)
    if code in _ZERO_DECIMAL_CURRENCIES:
        return 0
    if code in _THREE_DECIMAL_CURRENCIES:
        raise ValidationError(f"Currency {code} is not supported", field="currency")
    return 2


def _quantum(currency: str) -> Decimal:
    return Decimal(1).scaleb(-minor_unit_exponent(currency))


def _coerce(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if value is None:
        return ZERO
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid monetary amount: {value!r}")


def to_decimal(value, currency: str = "USD") -> Decimal:
    """Quantise ``value`` to the currency minor unit, rounding half up."""
    return _coerce(value).quantize(_quantum(currency), rounding=ROUND_HALF_UP)


def floor_to_minor_unit(value, currency: str = "USD") -> Decimal:
    """Quantise ``value`` rounding toward zero (discounts never round up)."""
    return _coerce(value).quantize(_quantum(currency), rounding=ROUND_DOWN)


def sum_amounts(values: Iterable, currency: str = "USD") -> Decimal:
    total = ZERO
    for v in values:
        total += _coerce(v)
    return to_decimal(total, currency)


def compute_balance(total, paid, currency: str = "USD") -> Decimal:
    balance = to_decimal(_coerce(total) - _coerce(paid), currency)
    return balance if balance > ZERO else to_decimal(ZERO, currency)


def percent_of(amount, percent, currency: str = "USD") -> Decimal:
    """``amount * percent / 100`` floored to the minor unit."""
    return floor_to_minor_unit(_coerce(amount) * _coerce(percent) / Decimal(100), currency)


def exact_amount(value, currency: str = "USD", field: str = "amount") -> Decimal:
    """Like ``to_decimal`` but refuses values finer than the minor unit instead of rounding them."""
    amount = _coerce(value)
    if not amount.is_finite():
        raise ValidationError(f"Invalid monetary amount: {value!r}", field=field)
    quantized = amount.quantize(_quantum(currency), rounding=ROUND_HALF_UP)
    if quantized != amount:
        raise ValidationError(
            f"{amount} has more decimal places than {normalize_currency(currency)} allows",
            field=field,
        )
    return quantized
