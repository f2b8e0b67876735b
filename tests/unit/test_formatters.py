"""
Unit tests for receipt formatters.
"""

import pytest
from datetime import date, datetime
from decimal import Decimal

from stockpos.models import PaymentMethod
from stockpos.utils.formatters import money_ar, date_ar, time_ar, payment_method_label


@pytest.mark.parametrize('value,expected', [
    (1500, '1.500,00'),
    (Decimal('30.5'), '30,50'),
    (Decimal('1234567.891'), '1.234.567,89'),
    ('10,5', '10,50'),
    (0, '0,00'),
    (Decimal('-42.10'), '-42,10'),
    (None, '-'),
    ('', '-'),
    ('abc', '-'),
])
def test_money_ar(value, expected):
    assert money_ar(value) == expected


def test_date_ar():
    assert date_ar(date(2024, 3, 7)) == '07/03/2024'
    assert date_ar(datetime(2024, 3, 7, 23, 59)) == '07/03/2024'
    assert date_ar(None) == '-'
    assert date_ar('2024-03-07') == '-'


def test_time_ar():
    assert time_ar(datetime(2024, 3, 7, 9, 5)) == '09:05'
    assert time_ar(None) == '-'


def test_payment_method_label():
    assert payment_method_label(PaymentMethod.CASH) == 'Efectivo'
    assert payment_method_label('transfer') == 'Transferencia'
    assert payment_method_label(PaymentMethod.CARD) == 'Tarjeta'


def test_formatters_are_not_registered_as_template_filters(app):
    for name in ('money_ar', 'date_ar', 'time_ar', 'payment_method_label'):
        assert name not in app.jinja_env.filters
