"""Tests for em_common.money: integer paise and 4-digit kWh arithmetic."""

from decimal import Decimal

import pytest

from src.em_common.money import (
    calculate_fee,
    energy_value,
    normalize_energy,
    paise_to_display,
    share_of,
)


class TestNormalizeEnergy:
    def test_quantizes_to_four_places(self) -> None:
        assert normalize_energy(Decimal("1.23456")) == Decimal("1.2346")

    def test_half_up(self) -> None:
        assert normalize_energy(Decimal("0.00005")) == Decimal("0.0001")

    def test_accepts_int_and_str(self) -> None:
        assert normalize_energy(30) == Decimal("30.0000")
        assert normalize_energy("2.5") == Decimal("2.5000")


class TestEnergyValue:
    def test_whole_quantity(self) -> None:
        assert energy_value(Decimal("30"), 500) == 15000

    def test_fractional_rounds_half_up(self) -> None:
        # 0.0015 kWh * 333 = 0.4995 -> 0, 0.0016 * 333 = 0.5328 -> 1
        assert energy_value(Decimal("0.0015"), 333) == 0
        assert energy_value(Decimal("0.0016"), 333) == 1

    def test_returns_int(self) -> None:
        assert isinstance(energy_value(Decimal("1.5"), 101), int)


class TestCalculateFee:
    @pytest.mark.parametrize(
        ("value", "bps", "expected"),
        [
            (15000, 500, 750),
            (1, 500, 1),
            (19, 500, 1),
            (21, 500, 2),
            (0, 500, 0),
            (15000, 0, 0),
        ],
    )
    def test_ceiling(self, value: int, bps: int, expected: int) -> None:
        assert calculate_fee(value, bps) == expected


class TestShareOf:
    def test_floors(self) -> None:
        assert share_of(10001, 4500) == 4500
        assert share_of(10001, 2000) == 2000

    def test_exact(self) -> None:
        assert share_of(15000, 2000) == 3000


class TestPaiseToDisplay:
    def test_positive(self) -> None:
        assert paise_to_display(15750) == "₹157.50"

    def test_thousands_separator(self) -> None:
        assert paise_to_display(123456789) == "₹1,234,567.89"

    def test_negative(self) -> None:
        assert paise_to_display(-1200) == "-₹12.00"

    def test_zero(self) -> None:
        assert paise_to_display(0) == "₹0.00"
