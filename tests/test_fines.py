from datetime import date, datetime
from decimal import Decimal

import pytest

from libdesk.models.models import Transaction
from libdesk.services.fines import FineCalculator, calculate_fine, days_overdue, fine_breakdown
from libdesk.services.settings import Policy


def test_fine_after_grace_period():
    fine = calculate_fine(date(2026, 1, 10), date(2026, 1, 15), Decimal("5.00"), 1)
    assert fine == Decimal("20.00")


def test_breakdown_fields():
    b = fine_breakdown(date(2026, 1, 10), date(2026, 1, 15), Decimal("5.00"), 1)
    assert b.days_overdue == 5
    assert b.chargeable_days == 4
    assert b.grace_period == 1
    assert b.fine_per_day == Decimal("5.00")
    assert b.fine == Decimal("20.00")
    assert b.return_date == date(2026, 1, 15)
    assert b.formula == "max(0, 5 - 1) x 5.00 = 20.00"


def test_within_grace_period_is_free():
    assert calculate_fine(date(2026, 1, 10), date(2026, 1, 11), Decimal("5.00"), 1) == Decimal("0.00")


@pytest.mark.parametrize("reference", [date(2026, 1, 10), date(2026, 1, 3)])
def test_not_yet_due(reference):
    b = fine_breakdown(date(2026, 1, 10), reference, Decimal("5.00"), 0)
    assert b.days_overdue == 0
    assert b.chargeable_days == 0
    assert b.fine == Decimal("0.00")


def test_rounds_to_cents():
    assert calculate_fine(date(2026, 1, 1), date(2026, 1, 4), Decimal("0.335"), 0) == Decimal("1.01")


def test_datetimes_use_whole_days():
    assert days_overdue(datetime(2026, 1, 10, 23, 59), datetime(2026, 1, 12, 0, 1)) == 2


def test_calculator_measures_open_loans_to_today():
    calc = FineCalculator(Policy(fine_per_day=Decimal("2.00"), grace_period=0))
    t = Transaction(status="borrowed", due_date=date(2026, 3, 1), returned_date=None)
    assert calc.for_transaction(t, today=date(2026, 3, 4)).fine == Decimal("6.00")


def test_calculator_measures_returned_loans_to_return_date():
    calc = FineCalculator(Policy(fine_per_day=Decimal("2.00"), grace_period=0))
    t = Transaction(status="returned", due_date=date(2026, 3, 1), returned_date=date(2026, 3, 2))
    assert calc.for_transaction(t, today=date(2026, 9, 1)).fine == Decimal("2.00")


def test_policy_summary():
    summary = FineCalculator(Policy()).policy_summary()
    assert summary["fine_per_day"] == Decimal("5.00")
    assert summary["grace_period"] == 1
