"""Fixed-point conversion between human amounts and token base units.

UI and AI suggestions hand us floats such as ``0.1 * 2340`` which carry
binary artefacts.  Everything is routed through :class:`~decimal.Decimal`
and rounded to the token's decimal count before scaling so the resulting
integer is exact.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, localcontext
from typing import Union

from errors import PrecisionError

Number = Union[Decimal, int, float, str]

UINT256_MAX = 2**256 - 1

# uint256 has 78 decimal digits; keep some headroom for intermediate products
_PRECISION = 100


def to_decimal(amount: Number) -> Decimal:
    """Coerce ``amount`` to ``Decimal`` without picking up float noise."""
    if isinstance(amount, bool):
        raise PrecisionError(f"Amount must be numeric, got {amount!r}")
    if isinstance(amount, Decimal):
        value = amount
    elif isinstance(amount, int):
        value = Decimal(amount)
    elif isinstance(amount, float):
        # str() gives the shortest repr, so 0.1 becomes Decimal("0.1")
        value = Decimal(str(amount))
    elif isinstance(amount, str):
        try:
            value = Decimal(amount.strip())
        except InvalidOperation as exc:
            raise PrecisionError(f"Amount is not a number: {amount!r}") from exc
    else:
        raise PrecisionError(f"Unsupported amount type: {type(amount).__name__}")
    if not value.is_finite():
        raise PrecisionError(f"Amount must be finite, got {amount!r}")
    return value


def quantize_amount(amount: Number, decimals: int) -> Decimal:
    """Round ``amount`` to ``decimals`` fractional digits."""
    if decimals < 0:
        raise PrecisionError(f"Token decimals must be >= 0, got {decimals}")
    value = to_decimal(amount)
    if value < 0:
        raise PrecisionError(f"Amount must not be negative, got {amount!r}")
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        try:
            return value.quantize(Decimal(1).scaleb(-decimals), rounding=ROUND_HALF_UP)
        except InvalidOperation as exc:
            raise PrecisionError(f"Amount {amount!r} too large for {decimals} decimals") from exc


def to_base_units(amount: Number, decimals: int) -> int:
    """Return ``amount`` expressed in the token's smallest unit."""
    rounded = quantize_amount(amount, decimals)
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        units = int(rounded.scaleb(decimals))
    if units > UINT256_MAX:
        raise PrecisionError(f"Amount {amount!r} overflows uint256 at {decimals} decimals")
    return units


def from_base_units(value: int, decimals: int) -> Decimal:
    """Inverse of :func:`to_base_units`."""
    if decimals < 0:
        raise PrecisionError(f"Token decimals must be >= 0, got {decimals}")
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return Decimal(int(value)).scaleb(-decimals)
