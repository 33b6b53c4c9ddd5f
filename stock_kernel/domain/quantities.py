"""
Quantity coercion and rounding (``stock_kernel.domain.quantities``).

to_quantity() is the ONLY sanctioned way to turn caller input into a ledger
quantity.  It rejects NaN, infinity, booleans, non-numeric strings and
anything finer than the nine decimal places a ledger column holds, and
never goes through binary floating point for float input.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from stock_kernel.exceptions import InvalidQuantityError

QUANTITY_DECIMAL_PLACES = 9
VALUE_DECIMAL_PLACES = 2

ZERO = Decimal("0")


def to_quantity(value: object, field: str = "quantity") -> Decimal:
    """
    Coerce caller input to a ledger quantity.

    Raises:
        InvalidQuantityError: value is not a finite number, or is finer than
            the persisted precision.
    """
    if isinstance(value, bool):
        raise InvalidQuantityError(field, value, "must be a number")
    try:
        if isinstance(value, Decimal):
            result = value
        elif isinstance(value, float):
            result = Decimal(repr(value))
        elif isinstance(value, (int, str)):
            result = Decimal(value)
        else:
            raise InvalidQuantityError(field, value, "must be a number")
    except InvalidOperation:
        raise InvalidQuantityError(field, value, "must be a number") from None
    if not result.is_finite():
        raise InvalidQuantityError(field, value, "must be finite")
    try:
        stored = round_quantity(result)
    except InvalidOperation:
        raise InvalidQuantityError(field, value, "is out of range") from None
    if stored != result:
        raise InvalidQuantityError(
            field, value, f"must have at most {QUANTITY_DECIMAL_PLACES} decimal places"
        )
    return result


def round_quantity(value: Decimal) -> Decimal:
    """Quantize to the persisted quantity precision."""
    return value.quantize(
        Decimal(1).scaleb(-QUANTITY_DECIMAL_PLACES), rounding=ROUND_HALF_UP
    )


def round_value(value: Decimal, decimal_places: int = VALUE_DECIMAL_PLACES) -> Decimal:
    """Round an extended value or percentage for reporting."""
    return value.quantize(Decimal(1).scaleb(-decimal_places), rounding=ROUND_HALF_UP)
