from sqlalchemy import (Column, Integer, String, Date, DateTime, Boolean, ForeignKey, Index, Numeric, Text,
                        CheckConstraint)
from sqlalchemy.orm import relationship
from datetime import datetime
from decimal import Decimal
from libdesk.core.database import Base

# Transaction.status values
BORROWED = "borrowed"
OVERDUE = "overdue"
RETURNED = "returned"
ACTIVE_STATUSES = (BORROWED, OVERDUE)

# Student.status values
STUDENT_ACTIVE = "active"
STUDENT_STATUSES = ("active", "inactive", "graduated")

# Book.status values
BOOK_AVAILABLE = "available"
BOOK_UNAVAILABLE = "unavailable"
BOOK_CONDITIONS = ("excellent", "good", "fair", "poor")

ROLE_ADMIN = "admin"
ROLE_LIBRARIAN = "librarian"


class Book(Base):
    __tablename__ = "books"
    id = Column(Integer, primary_key=True, index=True)
    accession_number = Column(String(50), unique=True, index=True, nullable=False)
    isbn = Column(String(13), index=True, nullable=True)
    title = Column(String, nullable=False, index=True)
    author = Column(String, nullable=False, index=True)
    copies_total = Column(Integer, nullable=False, default=1)
    copies_available = Column(Integer, nullable=False, default=1, index=True)
    condition = Column(String(20), nullable=False, default="good")
    status = Column(String(20), nullable=False, default=BOOK_AVAILABLE, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    transactions = relationship("Transaction", back_populates="book")

    __table_args__ = (
        CheckConstraint("copies_total >= 0", name="ck_books_copies_total"),
        CheckConstraint("copies_available >= 0 AND copies_available <= copies_total",
                        name="ck_books_copies_available"),
    )

Index('ix_books_title_author', Book.title, Book.author)
Index('ix_books_availability', Book.status, Book.copies_available)


class Student(Base):
    __tablename__ = "students"
    id = Column(Integer, primary_key=True, index=True)
    student_number = Column(String(50), unique=True, nullable=False, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False, index=True)
    grade_level = Column(String(2), nullable=True)
    section = Column(String(50), nullable=True)
    status = Column(String(20), nullable=False, default=STUDENT_ACTIVE, index=True)
    # bumped by every borrow to serialize capacity checks per student
    lock_version = Column(Integer, nullable=False, default=0)
    joined_at = Column(DateTime, default=datetime.utcnow)
    transactions = relationship("Transaction", back_populates="student")

    @property
    def full_name(self):
        return f"{self.last_name}, {self.first_name}"


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    role = Column(String(20), nullable=False, default=ROLE_LIBRARIAN)
    joined_at = Column(DateTime, default=datetime.utcnow)


class Transaction(Base):
    __tablename__ = "transactions"
    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False, index=True)
    librarian_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    borrowed_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False, index=True)
    returned_date = Column(Date, nullable=True)
    status = Column(String(20), nullable=False, default=BORROWED, index=True)
    fine_amount = Column(Numeric(8, 2), nullable=False, default=Decimal("0.00"))
    fine_paid_amount = Column(Numeric(8, 2), nullable=False, default=Decimal("0.00"))
    fine_paid = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    student = relationship("Student", back_populates="transactions")
    book = relationship("Book", back_populates="transactions")
    librarian = relationship("User")
    payments = relationship("FinePayment", back_populates="transaction", order_by="FinePayment.id")
    waivers = relationship("FineWaiver", back_populates="transaction", order_by="FineWaiver.id")

    __table_args__ = (
        CheckConstraint("status IN ('borrowed', 'overdue', 'returned')", name="ck_transactions_status"),
        CheckConstraint("fine_amount >= 0", name="ck_transactions_fine_amount"),
        CheckConstraint("(status = 'returned') = (returned_date IS NOT NULL)",
                        name="ck_transactions_returned_date"),
    )

    @property
    def outstanding_fine(self) -> Decimal:
        if self.fine_paid:
            return Decimal("0.00")
        return max(Decimal("0.00"), Decimal(self.fine_amount) - Decimal(self.fine_paid_amount or 0))

Index('ix_transactions_student_status', Transaction.student_id, Transaction.status)
Index('ix_transactions_status_due', Transaction.status, Transaction.due_date)
Index('ix_transactions_fines', Transaction.fine_amount, Transaction.fine_paid)


class FinePayment(Base):
    __tablename__ = "fine_payments"
    id = Column(Integer, primary_key=True, index=True)
    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=False, index=True)
    amount = Column(Numeric(8, 2), nullable=False)
    method = Column(String(30), nullable=False)
    recorded_at = Column(DateTime, default=datetime.utcnow)
    transaction = relationship("Transaction", back_populates="payments")


class FineWaiver(Base):
    __tablename__ = "fine_waivers"
    id = Column(Integer, primary_key=True, index=True)
    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=False, index=True)
    amount = Column(Numeric(8, 2), nullable=False)
    reason = Column(Text, nullable=False)
    waived_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    waived_at = Column(DateTime, default=datetime.utcnow)
    transaction = relationship("Transaction", back_populates="waivers")


class Setting(Base):
    __tablename__ = "settings"
    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(100), unique=True, nullable=False, index=True)
    value = Column(Text, nullable=True)
    description = Column(String(255), nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
