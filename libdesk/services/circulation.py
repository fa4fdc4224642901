"""Borrow and return.

A transaction moves ``borrowed -> overdue -> returned``; ``returned`` is
terminal. Each operation is one unit of work: the inventory move and the
transaction row change commit together or not at all.
"""

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from libdesk.core.database import transactional
from libdesk.core.errors import (AlreadyReturned, BookUnavailable, EligibilityDenied, ValidationError)
from libdesk.models.models import (BOOK_AVAILABLE, BOOK_CONDITIONS, BORROWED, RETURNED, Book, Student,
                                   Transaction, User)
from libdesk.schemas.schemas import Eligibility, FineBreakdown
from libdesk.services.eligibility import EligibilityEvaluator
from libdesk.services.fines import FineCalculator
from libdesk.services.inventory import InventoryLedger
from libdesk.services.repository import CirculationRepository
from libdesk.services.settings import Policy, SettingsProvider

logger = logging.getLogger("libdesk.circulation")


def is_overdue(transaction: Transaction, today: Optional[date] = None) -> bool:
    today = today or date.today()
    return transaction.status != RETURNED and transaction.due_date < today


def _append_note(existing: Optional[str], note: Optional[str]) -> Optional[str]:
    if not note:
        return existing
    return f"{existing}\n{note}" if existing else note


class CirculationService:
    def __init__(self, db: Session, settings: Optional[SettingsProvider] = None):
        self.db = db
        self.settings = settings
        self.repo = CirculationRepository(db)
        self.inventory = InventoryLedger(self.repo)

    def policy(self) -> Policy:
        if self.settings is None:
            return Policy()
        return Policy.from_settings(self.settings)

    def _evaluator(self, policy: Optional[Policy]) -> EligibilityEvaluator:
        return EligibilityEvaluator(self.repo, policy or self.policy())

    # queries
    def can_borrow(self, student: Student, policy: Optional[Policy] = None) -> Eligibility:
        return self._evaluator(policy).can_borrow(student)

    def current_borrowed_books(self, student: Student) -> List[Transaction]:
        return self.repo.list_active(student.id)

    def remaining_capacity(self, student: Student, policy: Optional[Policy] = None) -> int:
        return self._evaluator(policy).remaining_capacity(student)

    def total_unpaid_fines(self, student: Student) -> Decimal:
        return self.repo.total_unpaid_fines(student.id)

    def calculate_fine(self, due_date: date, reference_date: date, policy: Optional[Policy] = None) -> Decimal:
        return FineCalculator(policy or self.policy()).calculate(due_date, reference_date)

    def get_fine_breakdown(self, transaction: Transaction, today: Optional[date] = None,
                           policy: Optional[Policy] = None) -> FineBreakdown:
        return FineCalculator(policy or self.policy()).for_transaction(transaction, today)

    def list_overdue(self, today: Optional[date] = None) -> List[Transaction]:
        return self.repo.list_overdue_candidates(today or date.today())

    # commands
    def borrow_book(self, student: Student, book: Book, librarian: User, due_date: Optional[date] = None,
                    today: Optional[date] = None, policy: Optional[Policy] = None) -> Transaction:
        if student is None or book is None or librarian is None:
            raise ValidationError("Student, book and librarian are required")
        policy = policy or self.policy()
        today = today or date.today()
        due = due_date or today + timedelta(days=policy.borrowing_period)
        if due < today:
            raise ValidationError("Due date cannot be before the borrow date", due_date=due.isoformat())

        with transactional(self.db):
            # serializes concurrent borrows by the same student until commit
            self.repo.lock_student(student.id)
            if book.status != BOOK_AVAILABLE or book.copies_available <= 0:
                logger.warning(f"Book {book.id} is not available for borrowing")
                raise BookUnavailable("This book is not available for borrowing", book_id=book.id)
            eligibility = self._evaluator(policy).can_borrow(student)
            if not eligibility.eligible:
                logger.warning(f"Borrow refused for student {student.id}: {eligibility.reason}")
                raise EligibilityDenied(eligibility.reason, student_id=student.id,
                                        active_count=eligibility.active_count, max_books=eligibility.max_books)
            self.inventory.decrement_copy(book)
            transaction = self.repo.add_transaction(Transaction(
                student_id=student.id,
                book_id=book.id,
                librarian_id=librarian.id,
                borrowed_date=today,
                due_date=due,
                status=BORROWED,
                fine_amount=Decimal("0.00"),
                fine_paid_amount=Decimal("0.00"),
                fine_paid=False,
            ))
        self.db.refresh(transaction)
        logger.info(f"Student {student.id} borrowed book {book.id} transaction {transaction.id} due {due}")
        return transaction

    def return_book(self, transaction: Transaction, condition: Optional[str] = None, notes: Optional[str] = None,
                    returned_date: Optional[date] = None, policy: Optional[Policy] = None) -> Transaction:
        if transaction.status == RETURNED:
            raise AlreadyReturned("This book has already been returned", transaction_id=transaction.id)
        if condition is not None and condition not in BOOK_CONDITIONS:
            raise ValidationError(f"Unknown book condition {condition!r}", condition=condition)
        policy = policy or self.policy()
        reference = returned_date or date.today()
        if reference < transaction.borrowed_date:
            raise ValidationError("Return date cannot be before the borrow date",
                                  returned_date=reference.isoformat())

        fine = FineCalculator(policy).calculate(transaction.due_date, reference)
        with transactional(self.db):
            # status guard: a concurrent return of the same loan finds nothing to close
            closed = self.db.query(Transaction).filter(
                Transaction.id == transaction.id, Transaction.status != RETURNED,
            ).update({
                Transaction.status: RETURNED,
                Transaction.returned_date: reference,
                Transaction.fine_amount: fine,
                Transaction.notes: _append_note(transaction.notes, notes),
            }, synchronize_session=False)
            if closed != 1:
                raise AlreadyReturned("This book has already been returned", transaction_id=transaction.id)
            self.db.expire(transaction)
            book = self.repo.get_book(transaction.book_id)
            self.inventory.increment_copy(book)
            if condition:
                book.condition = condition
        self.db.refresh(transaction)
        if fine > 0:
            logger.info(f"Transaction {transaction.id} returned {reference} with fine {fine}")
        else:
            logger.info(f"Transaction {transaction.id} returned {reference}")
        return transaction

    def promote_overdue(self, today: Optional[date] = None) -> int:
        """Flip past-due ``borrowed`` rows to ``overdue``; returned rows are never touched."""
        today = today or date.today()
        with transactional(self.db):
            count = self.repo.promote_overdue(today)
        logger.info(f"Overdue sweep for {today}: {count} transaction(s) marked overdue")
        return count
