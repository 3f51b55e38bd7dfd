"""Money helpers.

Amounts are ``Decimal`` values quantised to cents with banker's rounding and
persisted as their canonical string form, so the journal hash computed at
append time is reproducible when the row is read back.
"""

from __future__ import annotations

from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Decimal | int | str) -> Decimal:
    """Convert ``value`` to a cent-quantised ``Decimal``.

    Floats and bools are refused; pass prices as strings or ``Decimal``.

    Raises:
        ValueError: If ``value`` is not a finite number, or is a float or bool.
    """
    if isinstance(value, (bool, float)):
        raise ValueError(f"Monetary amounts must be exact, got {type(value).__name__} {value!r}")
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Not a monetary amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Not a finite monetary amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_EVEN)


def money_str(value: Decimal) -> str:
    """Canonical storage/hash representation of a money value."""
    return str(to_money(value))


def order_amount(shares: int, price_per_share: Decimal) -> Decimal:
    """Amount charged for ``shares`` at ``price_per_share``."""
    return to_money(Decimal(shares) * price_per_share)


def weighted_average(
    old_quantity: int,
    old_average: Decimal,
    added_quantity: int,
    added_price: Decimal,
) -> Decimal:
    """Weighted average cost basis after adding ``added_quantity`` shares."""
    total = old_quantity + added_quantity
    if total <= 0:
        return ZERO
    numerator = Decimal(old_quantity) * old_average + Decimal(added_quantity) * added_price
    return to_money(numerator / Decimal(total))
