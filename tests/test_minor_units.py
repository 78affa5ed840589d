from decimal import Decimal

from infrastructure.external.payments.base import from_minor, to_minor


def test_to_minor_two_decimal_currency():
    assert to_minor(Decimal("499"), "INR") == 49900
    assert to_minor(Decimal("10.99"), "usd") == 1099


def test_to_minor_zero_decimal_currency():
    assert to_minor(Decimal("500"), "JPY") == 500


def test_from_minor_quantizes():
    assert from_minor(49900, "INR") == Decimal("499.00")
    assert str(from_minor(1099, "USD")) == "10.99"
    assert from_minor(500, "JPY") == Decimal("500")
