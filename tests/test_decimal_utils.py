# tests/test_decimal_utils.py
from decimal import Decimal

import pytest

from marketplace.core.exceptions import ValidationError
from marketplace.utils.decimal_utils import (
    compute_balance, exact_amount, floor_to_minor_unit, minor_unit_exponent, normalize_currency,
    percent_of, sum_amounts, to_decimal,
)


def test_float_inputs_go_through_str():
    assert to_decimal(0.1) + to_decimal(0.2) == Decimal("0.30")
    assert sum_amounts([0.1, 0.2, 0.3]) == Decimal("0.60")


def test_rounding_is_half_up_for_amounts_and_down_for_discounts():
    assert to_decimal("2.675") == Decimal("2.68")
    assert floor_to_minor_unit("2.679") == Decimal("2.67")
    assert percent_of("99.99", "15") == Decimal("14.99")


def test_zero_decimal_currency():
    assert minor_unit_exponent("JPY") == 0
    assert to_decimal("1234.5", "JPY") == Decimal("1235")


def test_three_decimal_currency_rejected():
    with pytest.raises(ValidationError):
        to_decimal("1.000", "KWD")


@pytest.mark.parametrize("code", ["", "US", "usdx", "12A"])
def test_invalid_currency_codes(code):
    with pytest.raises(ValidationError):
        normalize_currency(code)


def test_currency_code_is_upper_cased():
    assert normalize_currency(" eur ") == "EUR"


def test_balance_never_negative():
    assert compute_balance("100.00", "40.00") == Decimal("60.00")
    assert compute_balance("100.00", "150.00") == Decimal("0.00")


def test_garbage_amount_rejected():
    with pytest.raises(ValidationError):
        to_decimal("twelve")


def test_exact_amount_refuses_extra_precision():
    assert exact_amount("12.50") == Decimal("12.50")
    assert exact_amount("12.500") == Decimal("12.50")
    assert exact_amount("1200", "JPY") == Decimal("1200")
    with pytest.raises(ValidationError):
        exact_amount("0.005")
    with pytest.raises(ValidationError):
        exact_amount("12.5", "JPY")
    with pytest.raises(ValidationError):
        exact_amount("NaN")
