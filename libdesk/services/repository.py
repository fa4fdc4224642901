from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from libdesk.core.database import supports_row_locks
from libdesk.core.errors import NotFound
from libdesk.models.models import (ACTIVE_STATUSES, BORROWED, OVERDUE, Book, Student, Transaction, User)


class CirculationRepository:
    """Storage interface the circulation services work through.

    Reads go through the ORM; counter moves and the overdue sweep are single
    conditional UPDATE statements whose rowcount tells whether they applied.
    """

    def __init__(self, db: Session):
        self.db = db

    # lookups
    def get_book(self, book_id: int) -> Book:
        book = self.db.get(Book, book_id)
        if book is None:
            raise NotFound("Book not found", book_id=book_id)
        return book

    def get_student(self, student_id: int) -> Student:
        student = self.db.get(Student, student_id)
        if student is None:
            raise NotFound("Student not found", student_id=student_id)
        return student

    def get_user(self, user_id: int) -> User:
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFound("User not found", user_id=user_id)
        return user

    def get_transaction(self, transaction_id: int) -> Transaction:
        transaction = self.db.get(Transaction, transaction_id)
        if transaction is None:
            raise NotFound("Transaction not found", transaction_id=transaction_id)
        return transaction

    # students
    def lock_student(self, student_id: int) -> None:
        # The UPDATE holds the row (SQLite: database) write lock until commit.
        self.db.execute(
            update(Student)
            .where(Student.id == student_id)
            .values(lock_version=Student.lock_version + 1)
            .execution_options(synchronize_session=False)
        )
        if supports_row_locks(self.db):
            self.db.execute(select(Student.id).where(Student.id == student_id).with_for_update())

    def count_active(self, student_id: int) -> int:
        return self.db.execute(
            select(func.count(Transaction.id)).where(
                Transaction.student_id == student_id,
                Transaction.status.in_(ACTIVE_STATUSES),
            )
        ).scalar_one()

    def list_active(self, student_id: int) -> List[Transaction]:
        return (
            self.db.query(Transaction)
            .filter(Transaction.student_id == student_id, Transaction.status.in_(ACTIVE_STATUSES))
            .order_by(Transaction.due_date.asc(), Transaction.id.asc())
            .all()
        )

    def total_unpaid_fines(self, student_id: int) -> Decimal:
        total = self.db.execute(
            select(func.coalesce(func.sum(Transaction.fine_amount - Transaction.fine_paid_amount), 0)).where(
                Transaction.student_id == student_id,
                Transaction.fine_amount > 0,
                Transaction.fine_paid.is_(False),
            )
        ).scalar_one()
        return Decimal(str(total)).quantize(Decimal("0.01"))

    # books
    def decrement_available(self, book_id: int) -> bool:
        result = self.db.execute(
            update(Book)
            .where(Book.id == book_id, Book.copies_available > 0)
            .values(copies_available=Book.copies_available - 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def increment_available(self, book_id: int) -> bool:
        result = self.db.execute(
            update(Book)
            .where(Book.id == book_id, Book.copies_available < Book.copies_total)
            .values(copies_available=Book.copies_available + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def active_counts_by_book(self) -> List[Tuple[Book, int]]:
        active = (
            select(Transaction.book_id, func.count(Transaction.id).label("active"))
            .where(Transaction.status.in_(ACTIVE_STATUSES))
            .group_by(Transaction.book_id)
            .subquery()
        )
        rows = (
            self.db.query(Book, func.coalesce(active.c.active, 0))
            .outerjoin(active, active.c.book_id == Book.id)
            .order_by(Book.id)
            .all()
        )
        return [(book, int(count)) for book, count in rows]

    # transactions
    def add_transaction(self, transaction: Transaction) -> Transaction:
        self.db.add(transaction)
        self.db.flush()
        return transaction

    def list_overdue_candidates(self, today: date) -> List[Transaction]:
        return (
            self.db.query(Transaction)
            .filter(Transaction.status == BORROWED, Transaction.due_date < today)
            .order_by(Transaction.due_date.asc())
            .all()
        )

    def promote_overdue(self, today: date) -> int:
        result = self.db.execute(
            update(Transaction)
            .where(Transaction.status == BORROWED, Transaction.due_date < today)
            .values(status=OVERDUE)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def refresh_book_counters(self, book: Optional[Book]) -> None:
        if book is not None:
            self.db.expire(book, ["copies_available"])
