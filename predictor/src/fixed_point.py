"""Fixed-point price helpers.

Prices are stored as integers with :data:`PRICE_DECIMALS` implied decimal
places, the same scale the BTC/USDT oracle feed reports.

.. code-block:: python

    >>> to_fixed(60000)
    6000000000000
    >>> from_fixed(6100000000000)
    61000.0
    >>> rescale(61000_0000000000, 10, 8)
    6100000000000
"""

from decimal import ROUND_HALF_UP, Decimal

# Number of implied decimals for every price handled by the game.
PRICE_DECIMALS = 8


def to_fixed(price: float | int | str | Decimal, decimals: int = PRICE_DECIMALS) -> int:
    """Convert a human-readable price into its fixed-point integer form.

    Floats are converted through their shortest string representation so
    that ``61000.1`` does not turn into ``6100009999999``.

    :param price: Price in quote currency units.
    :param decimals: Number of implied decimals.
    :returns: Fixed-point integer price.
    """
    scaled = Decimal(str(price)) * (Decimal(10) ** decimals)
    return int(scaled.to_integral_value(rounding=ROUND_HALF_UP))


def from_fixed(value: int, decimals: int = PRICE_DECIMALS) -> float:
    """Convert a fixed-point integer price back to a float.

    :param value: Fixed-point integer price.
    :param decimals: Number of implied decimals.
    :returns: Price as float.
    """
    return value / 10**decimals


def rescale(value: int, from_decimals: int, to_decimals: int = PRICE_DECIMALS) -> int:
    """Change the number of implied decimals of a fixed-point value.

    Extra precision is truncated toward zero.

    :param value: Fixed-point integer.
    :param from_decimals: Decimals of ``value``.
    :param to_decimals: Target decimals.
    :returns: Rescaled integer.
    """
    if from_decimals == to_decimals:
        return value
    if from_decimals < to_decimals:
        return value * 10 ** (to_decimals - from_decimals)
    return value // 10 ** (from_decimals - to_decimals)


def format_price(value: int, decimals: int = PRICE_DECIMALS) -> str:
    """Format a fixed-point price for log output (e.g. ``$61,000.00``)."""
    return f"${from_fixed(value, decimals):,.2f}"
