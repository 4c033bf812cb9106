"""
Presentation formatting helpers.

Indian number grouping (1,23,45,678.50), rupee amounts, dates and slugs.
Amounts are rounded here and only here; the pricing engine and the ledger
keep full precision.
"""
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from datetime import date, datetime
from typing import Union, Optional


def _group_indian(integer_part: str) -> str:
    """Group digits the Indian way: last three, then pairs."""
    if len(integer_part) <= 3:
        return integer_part
    head, tail = integer_part[:-3], integer_part[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ','.join(groups) + ',' + tail


def num_in(value: Union[int, float, Decimal, str, None], decimals: Optional[int] = None) -> str:
    """
    Format a number with Indian digit grouping.

    Trailing zero decimals are dropped unless a fixed number of decimals is
    requested.

    Examples:
        num_in(1500) -> "1,500"
        num_in(123456.5) -> "1,23,456.5"
        num_in(98195.05) -> "98,195.05"
        num_in(None) -> "-"
    """
    if value is None or value == "":
        return "-"

    try:
        num = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return "-"

    if not num.is_finite():
        return "-"

    if decimals is not None:
        num = num.quantize(Decimal(10) ** -decimals, rounding=ROUND_HALF_UP)

    sign_str = '-' if num < 0 else ''
    num_str = format(abs(num), 'f')

    if '.' in num_str:
        integer_part, decimal_part = num_str.split('.')
        if decimals is None:
            decimal_part = decimal_part.rstrip('0')
    else:
        integer_part, decimal_part = num_str, ''

    grouped = _group_indian(integer_part)
    if decimal_part:
        return f"{sign_str}{grouped}.{decimal_part}"
    return f"{sign_str}{grouped}"


def money_in(value: Union[int, float, Decimal, str, None]) -> str:
    """
    Format a rupee amount: at most two decimals, no trailing zeros.

    Examples:
        money_in(1500) -> "₹1,500"
        money_in(2860.054) -> "₹2,860.05"
        money_in(-250.5) -> "-₹250.5"
    """
    if value is None or value == "":
        return "-"
    try:
        num = Decimal(str(value)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError, TypeError):
        return "-"
    formatted = num_in(abs(num))
    return f"-₹{formatted}" if num < 0 else f"₹{formatted}"


def money_pdf(value: Union[int, float, Decimal, str, None]) -> str:
    """Rupee amount for PDFs; Helvetica has no ₹ glyph so use 'Rs.'."""
    return money_in(value).replace('₹', 'Rs. ')


def date_in(value: Union[date, datetime, None]) -> str:
    """Format a date like '18 Oct 2026'."""
    if not value:
        return "-"
    return value.strftime('%d %b %Y').lstrip('0')


def datetime_in(value: Optional[datetime]) -> str:
    """Format a datetime like '18 Oct 2026, 14:05'."""
    if not value:
        return "-"
    return value.strftime('%d %b %Y, %H:%M').lstrip('0')


def slugify(text: str) -> str:
    """URL-friendly slug: 'Gold 22K Ring!' -> 'gold-22k-ring'."""
    slug = str(text).lower().strip()
    slug = re.sub(r'\s+', '-', slug)
    slug = re.sub(r'[^\w-]+', '', slug)
    slug = re.sub(r'-{2,}', '-', slug)
    return slug.strip('-')


def decimal_to_json(value: Optional[Decimal]) -> Optional[float]:
    """Render a Decimal for a JSON response body."""
    if value is None:
        return None
    return float(value)


_ONES = (
    '', 'One', 'Two', 'Three', 'Four', 'Five', 'Six', 'Seven', 'Eight', 'Nine',
    'Ten', 'Eleven', 'Twelve', 'Thirteen', 'Fourteen', 'Fifteen', 'Sixteen',
    'Seventeen', 'Eighteen', 'Nineteen',
)
_TENS = ('', '', 'Twenty', 'Thirty', 'Forty', 'Fifty', 'Sixty', 'Seventy', 'Eighty', 'Ninety')


def _below_thousand(n: int) -> str:
    words = []
    if n >= 100:
        words.append(f'{_ONES[n // 100]} Hundred')
        n %= 100
    if n >= 20:
        words.append(_TENS[n // 10])
        n %= 10
    if n:
        words.append(_ONES[n])
    return ' '.join(words)


def _indian_words(n: int) -> str:
    parts = []
    if n >= 10_000_000:
        parts.append(f'{_indian_words(n // 10_000_000)} Crore')
        n %= 10_000_000
    if n >= 100_000:
        parts.append(f'{_below_thousand(n // 100_000)} Lakh')
        n %= 100_000
    if n >= 1000:
        parts.append(f'{_below_thousand(n // 1000)} Thousand')
        n %= 1000
    if n:
        parts.append(_below_thousand(n))
    return ' '.join(parts)


def amount_in_words(value: Union[int, float, Decimal, str, None]) -> str:
    """
    Whole rupees in Indian English words, as printed on invoices.

    106642 -> 'One Lakh Six Thousand Six Hundred Forty Two'. Paise are
    rounded half-up to the nearest rupee.
    """
    try:
        rupees = int(Decimal(str(value or 0)).quantize(Decimal('1'), rounding=ROUND_HALF_UP))
    except (InvalidOperation, ValueError):
        return '-'
    if rupees == 0:
        return 'Zero'
    words = _indian_words(abs(rupees))
    return f'Minus {words}' if rupees < 0 else words
