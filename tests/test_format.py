from __future__ import annotations

import pytest

from farmdist.utils.format import format_currency, round_money


@pytest.mark.parametrize(
    "amount, expected",
    [
        (1234567.5, "Rp.1,234,567.50"),
        (0, "Rp.0.00"),
        (999, "Rp.999.00"),
        (1000, "Rp.1,000.00"),
        (0.005, "Rp.0.01"),
        (2500.555, "Rp.2,500.56"),
        ("30000", "Rp.30,000.00"),
        (None, "Rp.0.00"),
    ],
)
def test_format_currency(amount, expected):
    assert format_currency(amount) == expected


def test_format_currency_rejects_garbage():
    with pytest.raises(ValueError):
        format_currency("lots")


def test_round_money_half_up():
    assert round_money(0.125) == 0.13
    assert round_money(30000) == 30000.0
