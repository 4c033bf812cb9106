"""
Unit tests for presentation formatters and payload number parsing.
"""

import pytest
from datetime import date, datetime
from decimal import Decimal

from jewelbox.exceptions import ValidationError
from jewelbox.utils.formatters import (
    num_in, money_in, money_pdf, date_in, datetime_in, slugify, amount_in_words
)
from jewelbox.utils.number_format import (
    MAX_MONEY, parse_decimal, parse_money, parse_int, parse_rate, parse_weight, to_money
)


class TestNumIn:
    """Indian digit grouping."""

    @pytest.mark.parametrize('value, expected', [
        (0, '0'),
        (999, '999'),
        (1500, '1,500'),
        (123456, '1,23,456'),
        (12345678, '1,23,45,678'),
        (Decimal('98195.05'), '98,195.05'),
        (Decimal('1500.00'), '1,500'),
        (-250000, '-2,50,000'),
    ])
    def test_grouping(self, value, expected):
        assert num_in(value) == expected

    def test_fixed_decimals(self):
        assert num_in(Decimal('1234.5'), decimals=2) == '1,234.50'

    def test_missing_values(self):
        assert num_in(None) == '-'
        assert num_in('') == '-'
        assert num_in('abc') == '-'


class TestMoneyIn:
    """Rupee formatting rounds to paise at the boundary."""

    def test_whole_amount(self):
        assert money_in(1500) == '₹1,500'

    def test_rounds_half_up(self):
        assert money_in(Decimal('2860.055')) == '₹2,860.06'

    def test_negative(self):
        assert money_in(Decimal('-250.5')) == '-₹250.5'

    def test_pdf_variant_has_no_rupee_glyph(self):
        assert money_pdf(1500) == 'Rs. 1,500'


class TestDates:

    def test_date_in(self):
        assert date_in(date(2026, 3, 7)) == '7 Mar 2026'

    def test_datetime_in(self):
        assert datetime_in(datetime(2026, 10, 18, 14, 5)) == '18 Oct 2026, 14:05'

    def test_missing_date(self):
        assert date_in(None) == '-'


class TestSlugify:

    def test_basic(self):
        assert slugify('Gold 22K Ring!') == 'gold-22k-ring'

    def test_collapses_dashes(self):
        assert slugify('  Rose -- Gold  ') == 'rose-gold'


class TestAmountInWords:

    @pytest.mark.parametrize('value,expected', [
        (106642, 'One Lakh Six Thousand Six Hundred Forty Two'),
        (0, 'Zero'),
        (10000000, 'One Crore'),
        (Decimal('50000.50'), 'Fifty Thousand One'),
        ('12345678901', 'One Thousand Two Hundred Thirty Four Crore '
                        'Fifty Six Lakh Seventy Eight Thousand Nine Hundred One'),
    ])
    def test_indian_words(self, value, expected):
        assert amount_in_words(value) == expected

    def test_negative(self):
        assert amount_in_words(-15) == 'Minus Fifteen'


class TestParseDecimal:
    """Request payload parsing."""

    def test_float_goes_through_str(self):
        assert parse_decimal(0.1, 'amount') == Decimal('0.1')

    def test_numeric_string(self):
        assert parse_decimal(' 12.50 ', 'amount') == Decimal('12.50')

    def test_default_used_when_missing(self):
        assert parse_decimal(None, 'gst', default=3) == Decimal('3')

    def test_zero_is_not_missing(self):
        assert parse_decimal(0, 'gst', default=3) == Decimal('0')

    def test_required(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_decimal(None, 'amount')
        assert exc_info.value.message == 'amount is required'

    @pytest.mark.parametrize('value', ['abc', True, 'NaN', 'Infinity'])
    def test_rejects_non_numbers(self, value):
        with pytest.raises(ValidationError):
            parse_decimal(value, 'amount')

    def test_range(self):
        with pytest.raises(ValidationError):
            parse_decimal(-1, 'amount', minimum=0)
        with pytest.raises(ValidationError):
            parse_decimal(101, 'gst', maximum=100)

    def test_parse_money_quantizes(self):
        assert parse_money('10.005', 'amount') == Decimal('10.01')
        assert to_money(Decimal('2.344')) == Decimal('2.34')

    def test_parse_money_bounded_by_column(self):
        assert parse_money('999999999999.99', 'amount') == MAX_MONEY
        with pytest.raises(ValidationError):
            parse_money('1e30', 'amount')
        with pytest.raises(ValidationError):
            parse_money('1000000000000', 'amount')

    def test_to_money_out_of_range(self):
        with pytest.raises(ValidationError):
            to_money(Decimal('1e30'))

    def test_rates_and_weights_keep_four_decimals(self):
        assert parse_rate('5000.00005', 'new_price') == Decimal('5000.0001')
        assert parse_weight('2.34564', 'weight_in_grams') == Decimal('2.3456')
        with pytest.raises(ValidationError):
            parse_rate('1e10', 'new_price')
        with pytest.raises(ValidationError):
            parse_weight('100000000', 'weight_in_grams')

    def test_parse_int(self):
        assert parse_int('3', 'quantity', minimum=1) == 3
        with pytest.raises(ValidationError):
            parse_int('1.5', 'quantity')
