"""Fine settlement: payments, manual mark-as-paid and administrative waivers.

Payments are partial: each one reduces the outstanding balance and the fine
counts as paid once the balance reaches zero. Every settlement writes an
audit row (:class:`FinePayment` or :class:`FineWaiver`).

Updates are compare-and-set on ``fine_paid_amount`` so two clerks settling
the same fine at once cannot both apply.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy.orm import Session

from libdesk.core.database import transactional
from libdesk.core.errors import (FineAlreadyPaid, NoFineToPay, NoFineToWaive, NotAuthorized, StateError,
                                 ValidationError)
from libdesk.models.models import ROLE_ADMIN, FinePayment, FineWaiver, Transaction, User
from libdesk.schemas.schemas import PaymentResult

logger = logging.getLogger("libdesk.payments")

CENTS = Decimal("0.01")
# fits the Numeric(8, 2) money columns
MAX_AMOUNT = Decimal("999999.99")


def _money(value) -> Decimal:
    try:
        amount = Decimal(str(value))
        if not amount.is_finite() or abs(amount) > MAX_AMOUNT:
            raise ValueError(value)
        return amount.quantize(CENTS)
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid amount {value!r}", amount=str(value))


class PaymentLedger:
    def __init__(self, db: Session):
        self.db = db

    def _settle(self, transaction: Transaction, paid_amount: Decimal, fine_paid: bool,
                fine_amount: Optional[Decimal] = None, notes: Optional[str] = None) -> None:
        values = {
            Transaction.fine_paid_amount: paid_amount,
            Transaction.fine_paid: fine_paid,
        }
        if fine_amount is not None:
            values[Transaction.fine_amount] = fine_amount
        if notes is not None:
            values[Transaction.notes] = notes
        updated = self.db.query(Transaction).filter(
            Transaction.id == transaction.id,
            Transaction.fine_paid.is_(False),
            Transaction.fine_paid_amount == transaction.fine_paid_amount,
        ).update(values, synchronize_session=False)
        if updated != 1:
            raise StateError("Fine was settled concurrently; reload and retry", transaction_id=transaction.id)
        self.db.expire(transaction)

    def record_payment(self, transaction: Transaction, amount, method: str) -> PaymentResult:
        amount = _money(amount)
        if amount <= 0:
            raise ValidationError("Payment amount must be greater than zero", amount=str(amount))
        if not method or not method.strip():
            raise ValidationError("Payment method is required")
        if transaction.fine_paid:
            raise FineAlreadyPaid("This fine has already been paid", transaction_id=transaction.id)
        balance = transaction.outstanding_fine
        if amount > balance:
            raise ValidationError("Payment amount exceeds the outstanding fine",
                                  amount=str(amount), balance=str(balance))

        with transactional(self.db):
            paid_total = Decimal(transaction.fine_paid_amount) + amount
            settled = paid_total >= Decimal(transaction.fine_amount)
            self._settle(transaction, paid_total, settled)
            self.db.add(FinePayment(transaction_id=transaction.id, amount=amount, method=method.strip()))
        self.db.refresh(transaction)
        logger.info(f"Payment of {amount} ({method}) recorded for transaction {transaction.id}; "
                    f"balance {transaction.outstanding_fine}")
        return PaymentResult(
            transaction_id=transaction.id,
            amount=amount,
            method=method.strip(),
            fine_amount=transaction.fine_amount,
            paid_total=transaction.fine_paid_amount,
            balance=transaction.outstanding_fine,
            fine_paid=transaction.fine_paid,
        )

    def mark_fine_paid(self, transaction: Transaction) -> Transaction:
        """Settle the whole remaining balance without an itemized payment."""
        if Decimal(transaction.fine_amount) <= 0:
            raise NoFineToPay("This transaction has no fine", transaction_id=transaction.id)
        if transaction.fine_paid:
            raise FineAlreadyPaid("This fine has already been paid", transaction_id=transaction.id)
        balance = transaction.outstanding_fine
        with transactional(self.db):
            self._settle(transaction, Decimal(transaction.fine_amount), True)
            if balance > 0:
                self.db.add(FinePayment(transaction_id=transaction.id, amount=balance, method="manual"))
        self.db.refresh(transaction)
        logger.info(f"Fine for transaction {transaction.id} marked paid")
        return transaction

    def waive_fine(self, transaction: Transaction, reason: str, waived_by: Optional[User] = None) -> Transaction:
        """Forgive the outstanding balance; the fine shrinks to what was already paid."""
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A reason is required to waive a fine")
        if waived_by is not None and waived_by.role != ROLE_ADMIN:
            raise NotAuthorized("Only administrators can waive fines", user_id=waived_by.id)
        if Decimal(transaction.fine_amount) <= 0:
            raise NoFineToWaive("This transaction has no fine to waive", transaction_id=transaction.id)
        if transaction.fine_paid:
            raise FineAlreadyPaid("This fine has already been paid", transaction_id=transaction.id)

        waived = transaction.outstanding_fine
        paid = Decimal(transaction.fine_paid_amount)
        note = f"Fine waived: {reason}"
        notes = f"{transaction.notes}\n{note}" if transaction.notes else note
        with transactional(self.db):
            self._settle(transaction, paid, True, fine_amount=paid, notes=notes)
            self.db.add(FineWaiver(
                transaction_id=transaction.id,
                amount=waived,
                reason=reason,
                waived_by=waived_by.id if waived_by is not None else None,
            ))
        self.db.refresh(transaction)
        logger.info(f"Fine of {waived} waived for transaction {transaction.id}: {reason}")
        return transaction
