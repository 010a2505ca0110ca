"""Decimal adjustment and log-price normalization shared by all decoders."""

from __future__ import annotations

import math
from decimal import Decimal, localcontext
from fractions import Fraction

from .errors import InvalidPriceError
from .models import Quote

# Significant digits for ln(). sqrtPriceX96**2 spans ~1e-77..1e77, so 60 digits
# keeps comparisons between neighbouring pools exact well below any fee tier.
LOG_PRECISION = 60


def adjust_decimals(value: Fraction, exponent: int) -> Fraction:
    """Scale ``value`` by ``10**exponent`` without losing the sign of the exponent.

    A negative exponent divides by ``10**-exponent``; it never degrades to a
    no-op the way an integer power with a negative exponent can.
    """
    if exponent > 0:
        return value * 10**exponent
    if exponent < 0:
        return value / 10**-exponent
    return value


def to_fraction(price: Fraction | Decimal | int | float, pool_address: str | None = None) -> Fraction:
    """Coerce a price to an exact rational, rejecting non-finite and non-positive values."""
    if isinstance(price, float) and not math.isfinite(price):
        raise InvalidPriceError(price, pool_address)
    if isinstance(price, Decimal) and not price.is_finite():
        raise InvalidPriceError(price, pool_address)
    try:
        value = Fraction(price)
    except (TypeError, ValueError) as e:
        raise InvalidPriceError(price, pool_address) from e
    if value <= 0:
        raise InvalidPriceError(price, pool_address)
    return value


def log_price(price: Fraction) -> Decimal:
    """Natural log of a positive rational, evaluated at LOG_PRECISION digits."""
    with localcontext() as ctx:
        ctx.prec = LOG_PRECISION
        return (Decimal(price.numerator) / Decimal(price.denominator)).ln()


def normalize(price: Fraction | Decimal | int | float, pool_address: str | None = None) -> Quote:
    """Build the forward/reverse quote for a decimal-adjusted forward price.

    The reverse side is derived, never recomputed: ``reverse_price`` is the
    exact inverse and ``reverse_log_price`` the exact negation, so
    ``price * reverse_price == 1`` and ``log_price == -reverse_log_price``.
    """
    forward = to_fraction(price, pool_address)
    log = log_price(forward)
    return Quote(
        price=forward,
        log_price=log,
        reverse_price=1 / forward,
        reverse_log_price=log.copy_negate(),
    )
