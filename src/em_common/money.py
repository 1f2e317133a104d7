"""Integer arithmetic utilities for paise-based settlement.

All prices, amounts, and balances use int (paise). Energy quantities are
Decimal kWh with 4 fractional digits. No float anywhere money is involved.
"""

from decimal import ROUND_HALF_UP, Decimal

ENERGY_QUANTUM = Decimal("0.0001")


def normalize_energy(quantity: Decimal | int | str) -> Decimal:
    """Quantize a kWh amount to the 4 decimal places stored in NUMERIC(12,4)."""
    return Decimal(quantity).quantize(ENERGY_QUANTUM, rounding=ROUND_HALF_UP)


def energy_value(quantity_kwh: Decimal, price_per_kwh: int) -> int:
    """Value of an energy quantity in paise, rounded half-up to a whole paisa."""
    value = (Decimal(quantity_kwh) * price_per_kwh).quantize(
        Decimal(1), rounding=ROUND_HALF_UP
    )
    return int(value)


def calculate_fee(value: int, fee_rate_bps: int) -> int:
    """Calculate fee with ceiling division (platform never loses).

    fee = ceil(value * fee_rate_bps / 10000)
    Using integer ceiling: (a + b - 1) // b
    """
    if value == 0 or fee_rate_bps == 0:
        return 0
    return (value * fee_rate_bps + 9999) // 10000


def share_of(value: int, share_bps: int) -> int:
    """Floor share of a value; the caller assigns the remainder explicitly."""
    return (value * share_bps) // 10000


def paise_to_display(paise: int) -> str:
    """Convert paise to display string: 15750 -> '₹157.50', -1200 -> '-₹12.00'."""
    if paise < 0:
        abs_paise = -paise
        return f"-₹{abs_paise // 100:,}.{abs_paise % 100:02d}"
    return f"₹{paise // 100:,}.{paise % 100:02d}"
