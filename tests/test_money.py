"""
Test suite for money module

Tests Money arithmetic, rounding, formatting and parsing of user input.
All monetary calculations must use Decimal precision.
"""

import pytest
from decimal import Decimal

from lending.money import Money, Currency, decimal_from_string, round_cents, to_decimal


class TestMoney:
    """Test Money class operations"""

    def test_rounds_half_up(self):
        """Test amounts are rounded to cents on creation"""
        assert Money(Decimal('100.555')).amount == Decimal('100.56')
        assert Money(Decimal('100.554')).amount == Decimal('100.55')
        assert Money(Decimal('10')).currency == Currency.BRL

    def test_arithmetic(self):
        """Test arithmetic keeps currency and precision"""
        a = Money(Decimal('100.50'))
        b = Money(Decimal('50.25'))

        assert a + b == Money(Decimal('150.75'))
        assert a - b == Money(Decimal('50.25'))
        assert a * Decimal('0.035') == Money(Decimal('3.52'))
        assert Money(Decimal('1000')) / 3 == Money(Decimal('333.33'))
        assert -a == Money(Decimal('-100.50'))
        assert abs(-a) == a

    def test_currency_mismatch(self):
        """Test mixing currencies is an error"""
        with pytest.raises(ValueError):
            Money(Decimal('1'), Currency.BRL) + Money(Decimal('1'), Currency.USD)
        with pytest.raises(ValueError):
            Money(Decimal('1'), Currency.BRL) < Money(Decimal('1'), Currency.USD)

    def test_sum_and_predicates(self):
        """Test Money.sum and sign checks"""
        total = Money.sum([Money(Decimal('0.10')), Money(Decimal('0.20'))])
        assert total == Money(Decimal('0.30'))
        assert Money.sum([]).is_zero()
        assert total.is_positive()
        assert (-total).is_negative()

    def test_to_string(self):
        """Test display formats"""
        amount = Money(Decimal('1350'))
        assert amount.to_string('pt_BR') == "R$ 1.350,00"
        assert amount.to_string() == "BRL 1,350.00"
        assert Money(Decimal('0.5'), Currency.USD).to_string('pt_BR') == "US$ 0,50"


class TestDecimalParsing:
    """Test conversion of user input to Decimal"""

    @pytest.mark.parametrize("text,expected", [
        ("1350", Decimal('1350')),
        ("1350.50", Decimal('1350.50')),
        ("1.350,50", Decimal('1350.50')),
        ("R$ 1.350,50", Decimal('1350.50')),
        ("1,350.50", Decimal('1350.50')),
        ("7,5", Decimal('7.5')),
        ("1,350", Decimal('1350')),
        ("1.000.000", Decimal('1000000')),
    ])
    def test_formats(self, text, expected):
        """Test Brazilian and US formats"""
        assert decimal_from_string(text) == expected

    def test_invalid(self):
        """Test unparseable input"""
        with pytest.raises(ValueError):
            decimal_from_string("")
        with pytest.raises(ValueError):
            decimal_from_string("abc")

    def test_to_decimal(self):
        """Test conversion of the accepted input types"""
        assert to_decimal(Decimal('1.5')) == Decimal('1.5')
        assert to_decimal(10) == Decimal('10')
        assert to_decimal("10,5") == Decimal('10.5')
        assert to_decimal(Money(Decimal('2.50'))) == Decimal('2.50')
        with pytest.raises(ValueError):
            to_decimal("not a number")

    def test_round_cents(self):
        """Test half-up rounding to cents"""
        assert round_cents(Decimal('999.9755859375')) == Decimal('999.98')
        assert round_cents(Decimal('0.005')) == Decimal('0.01')
