"""Overdue fine arithmetic.

    days_overdue    = max(0, reference_date - due_date)      in whole days
    chargeable_days = max(0, days_overdue - grace_period)
    fine            = chargeable_days * fine_per_day         rounded to 2dp

Everything here is pure: no database, no clock unless a reference date is
left out, in which case today is used.
"""

from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional, Union

from libdesk.models.models import RETURNED, Transaction
from libdesk.schemas.schemas import FineBreakdown
from libdesk.services.settings import Policy

CENTS = Decimal("0.01")

DateLike = Union[date, datetime]


def _as_date(value: DateLike) -> date:
    return value.date() if isinstance(value, datetime) else value


def days_overdue(due_date: DateLike, reference_date: DateLike) -> int:
    return max(0, (_as_date(reference_date) - _as_date(due_date)).days)


def chargeable_days(days: int, grace_period: int) -> int:
    return max(0, days - int(grace_period))


def calculate_fine(due_date: DateLike, reference_date: DateLike, fine_per_day, grace_period: int) -> Decimal:
    days = chargeable_days(days_overdue(due_date, reference_date), grace_period)
    return (Decimal(days) * Decimal(str(fine_per_day))).quantize(CENTS, rounding=ROUND_HALF_UP)


def fine_breakdown(due_date: DateLike, reference_date: DateLike, fine_per_day, grace_period: int) -> FineBreakdown:
    rate = Decimal(str(fine_per_day))
    overdue = days_overdue(due_date, reference_date)
    chargeable = chargeable_days(overdue, grace_period)
    fine = calculate_fine(due_date, reference_date, rate, grace_period)
    return FineBreakdown(
        due_date=_as_date(due_date),
        return_date=_as_date(reference_date),
        days_overdue=overdue,
        grace_period=int(grace_period),
        chargeable_days=chargeable,
        fine_per_day=rate,
        formula=f"max(0, {overdue} - {int(grace_period)}) x {rate} = {fine}",
        fine=fine,
    )


class FineCalculator:
    """Applies a :class:`Policy` snapshot to transactions."""

    def __init__(self, policy: Policy):
        self.policy = policy

    def calculate(self, due_date: DateLike, reference_date: DateLike) -> Decimal:
        return calculate_fine(due_date, reference_date, self.policy.fine_per_day, self.policy.grace_period)

    def breakdown(self, due_date: DateLike, reference_date: DateLike) -> FineBreakdown:
        return fine_breakdown(due_date, reference_date, self.policy.fine_per_day, self.policy.grace_period)

    def for_transaction(self, transaction: Transaction, today: Optional[date] = None) -> FineBreakdown:
        # returned loans are measured to the return date, open ones to today
        if transaction.status == RETURNED and transaction.returned_date is not None:
            reference = transaction.returned_date
        else:
            reference = today or date.today()
        return self.breakdown(transaction.due_date, reference)

    def policy_summary(self) -> Dict[str, object]:
        return {
            "fine_per_day": self.policy.fine_per_day,
            "grace_period": self.policy.grace_period,
            "description": (f"{self.policy.fine_per_day} per day after a "
                            f"{self.policy.grace_period} day grace period"),
        }
