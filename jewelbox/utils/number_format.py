"""Number parsing utilities for request payloads."""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from jewelbox.exceptions import ValidationError

MONEY_QUANT = Decimal('0.01')
MEASURE_QUANT = Decimal('0.0001')

# Largest values the Numeric columns can hold
MAX_MONEY = Decimal('999999999999.99')     # Numeric(14, 2)
MAX_RATE = Decimal('9999999999.9999')      # Numeric(14, 4)
MAX_WEIGHT = Decimal('99999999.9999')      # Numeric(12, 4)
MAX_PRICE = Decimal('999999999999.9999')   # Numeric(16, 4), product price snapshots


def parse_decimal(value, field: str, minimum=None, maximum=None, default=None, quant=None) -> Decimal:
    """
    Parse a JSON number (or numeric string) into a Decimal.

    Floats go through str() so 0.1 becomes Decimal('0.1') and not the
    binary expansion. Booleans are rejected even though bool is an int.
    With quant, the result is rounded half-up to that step after the
    range check, so what is returned is exactly what the column stores.

    Raises:
        ValidationError: if the value is missing, not numeric, or out of range.
    """
    if value is None or value == '':
        if default is not None:
            return Decimal(str(default))
        raise ValidationError(f'{field} is required')

    if isinstance(value, bool):
        raise ValidationError(f'{field} must be a number')

    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f'{field} must be a number')

    if not number.is_finite():
        raise ValidationError(f'{field} must be a finite number')

    if minimum is not None and number < Decimal(str(minimum)):
        raise ValidationError(f'{field} must be greater than or equal to {minimum}')

    if maximum is not None and number > Decimal(str(maximum)):
        raise ValidationError(f'{field} must be less than or equal to {maximum}')

    if quant is not None:
        try:
            number = number.quantize(quant, rounding=ROUND_HALF_UP)
        except InvalidOperation:
            raise ValidationError(f'{field} is out of range')

    return number


def parse_money(value, field: str, minimum=0, maximum=MAX_MONEY, default=None) -> Decimal:
    """Parse a currency amount and quantize it to paise (2 decimals)."""
    return parse_decimal(value, field, minimum=minimum, maximum=maximum, default=default, quant=MONEY_QUANT)


def parse_rate(value, field: str, default=None) -> Decimal:
    """Parse a per-gram/per-carat rate or a charge value (4 decimals)."""
    return parse_decimal(value, field, minimum=0, maximum=MAX_RATE, default=default, quant=MEASURE_QUANT)


def parse_weight(value, field: str) -> Decimal:
    """Parse a weight in grams or carats (4 decimals)."""
    return parse_decimal(value, field, minimum=0, maximum=MAX_WEIGHT, quant=MEASURE_QUANT)


def parse_int(value, field: str, minimum=None, maximum=None, default=None) -> int:
    """Parse a whole number (quantities)."""
    number = parse_decimal(value, field, minimum=minimum, maximum=maximum, default=default)
    if number != number.to_integral_value():
        raise ValidationError(f'{field} must be a whole number')
    return int(number)


def to_money(value) -> Decimal:
    try:
        return Decimal(value).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValidationError(f'{value} is not a representable amount')
