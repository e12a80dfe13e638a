# tests/conftest.py
"""
Shared fixtures for medcore tests.

Dates are pinned to 2025-06-01 so document numbers and expiry maths are
predictable.
"""
from datetime import date, datetime, timedelta, timezone as dt_timezone
from decimal import Decimal

import pytest
from freezegun import freeze_time

NOW = datetime(2025, 6, 1, 9, 0, tzinfo=dt_timezone.utc)
TODAY = date(2025, 6, 1)


@pytest.fixture(autouse=True)
def frozen_clock():
    """Every test runs at NOW unless it passes an explicit clock."""
    with freeze_time(NOW):
        yield


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def make_lot(now):
    """Receive stock into a new lot."""
    from medcore_inventory.services import receive_stock

    counter = {'n': 0}

    def _make(product_ref='PARA500', quantity=100, expiry_days=365, pharmacy_id='PH1',
              batch_number=None, **kwargs):
        counter['n'] += 1
        return receive_stock(
            pharmacy_id,
            product_ref,
            batch_number or f"B{counter['n']:03d}",
            TODAY + timedelta(days=expiry_days),
            quantity,
            now=kwargs.pop('received_at', now),
            **kwargs,
        )

    return _make


@pytest.fixture
def make_prescription():
    """Create a draft prescription with one line by default."""
    from medcore_erx.services import create_prescription

    def _make(items=None, **kwargs):
        items = items or [{'product_ref': 'PARA500', 'quantity': 10, 'refills_allowed': 0}]
        return create_prescription(
            kwargs.pop('doctor_id', 'DR1'),
            kwargs.pop('patient_id', 'PT1'),
            items,
            kwargs.pop('diagnosis', [{'code': 'R50.9', 'description': 'Fever'}]),
            kwargs.pop('notes', 'After food'),
            **kwargs,
        )

    return _make


@pytest.fixture
def make_signed_prescription(make_prescription, now):
    from medcore_erx.services import sign

    def _make(items=None, **kwargs):
        prescription = make_prescription(items, **kwargs)
        sign(prescription, actor='DR1', now=now)
        return prescription

    return _make


@pytest.fixture
def make_payment(now):
    from medcore_payments.services import initiate_payment

    def _make(amount=Decimal('1000'), entity_type='order', entity_ref='ORD1', **kwargs):
        return initiate_payment(entity_type, entity_ref, amount, now=kwargs.pop('at', now), **kwargs)

    return _make


@pytest.fixture
def captured_payment(make_payment, now):
    """A 1000 INR payment that has been authorized and captured."""
    from medcore_payments.services import authorize, capture

    payment = make_payment()
    authorize(payment, gateway_ref='gw_1')
    capture(payment, now=now)
    return payment


@pytest.fixture
def plan_definition():
    return {
        'code': 'gold',
        'name': 'Gold Family',
        'price': '2999.00',
        'duration': {'value': 12, 'unit': 'months'},
        'max_members': 3,
        'benefits': [
            {'type': 'free_consultation', 'limit_per_month': 2, 'limit_total': 3},
            {'type': 'lab_discount', 'limit_per_month': None, 'limit_total': None},
        ],
    }
