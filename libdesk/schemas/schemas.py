from pydantic import BaseModel, ConfigDict, Field, constr, field_validator
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from libdesk.models.models import BOOK_CONDITIONS, STUDENT_STATUSES


class BookBase(BaseModel):
    accession_number: constr(min_length=1, max_length=50)
    title: constr(min_length=1)
    author: constr(min_length=1)
    isbn: Optional[str] = None
    copies_total: int = Field(default=1, ge=0)
    condition: str = "good"

    @field_validator('condition')
    @classmethod
    def ensure_known_condition(cls, v):
        if v not in BOOK_CONDITIONS:
            raise ValueError(f"condition must be one of {', '.join(BOOK_CONDITIONS)}")
        return v

class BookCreate(BookBase):
    pass

class BookOut(BookBase):
    model_config = ConfigDict(from_attributes=True)
    id: int
    copies_available: int
    status: str
    created_at: datetime


class StudentBase(BaseModel):
    student_number: constr(min_length=1, max_length=50)
    first_name: constr(min_length=1)
    last_name: constr(min_length=1)
    grade_level: Optional[str] = None
    section: Optional[str] = None
    status: str = "active"

    @field_validator('status')
    @classmethod
    def ensure_known_status(cls, v):
        if v not in STUDENT_STATUSES:
            raise ValueError(f"status must be one of {', '.join(STUDENT_STATUSES)}")
        return v

class StudentCreate(StudentBase):
    pass

class StudentOut(StudentBase):
    model_config = ConfigDict(from_attributes=True)
    id: int
    joined_at: datetime


class UserBase(BaseModel):
    name: constr(min_length=1)
    email: constr(min_length=5)
    role: str = "librarian"

class UserCreate(UserBase):
    pass

class UserOut(UserBase):
    model_config = ConfigDict(from_attributes=True)
    id: int
    joined_at: datetime


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    student_id: int
    book_id: int
    librarian_id: int
    borrowed_date: date
    due_date: date
    returned_date: Optional[date] = None
    status: str
    fine_amount: Decimal
    fine_paid_amount: Decimal
    fine_paid: bool
    notes: Optional[str] = None


class BorrowRequest(BaseModel):
    student_id: int
    book_id: int
    librarian_id: int
    due_date: Optional[date] = None

class ReturnRequest(BaseModel):
    condition: Optional[str] = None
    notes: Optional[str] = None
    returned_date: Optional[date] = None

class PaymentRequest(BaseModel):
    amount: Decimal
    method: constr(min_length=1, max_length=30) = "cash"

class WaiveRequest(BaseModel):
    reason: str
    admin_id: int

class SettingUpdate(BaseModel):
    value: str


class Eligibility(BaseModel):
    """Outcome of an eligibility check. ``reason`` is None when eligible."""
    eligible: bool
    reason: Optional[str] = None
    active_count: int = 0
    max_books: int = 0
    remaining_capacity: int = 0
    unpaid_fines: Decimal = Decimal("0.00")


class FineBreakdown(BaseModel):
    due_date: date
    return_date: date
    days_overdue: int
    grace_period: int
    chargeable_days: int
    fine_per_day: Decimal
    formula: str
    fine: Decimal


class PaymentResult(BaseModel):
    transaction_id: int
    amount: Decimal
    method: str
    fine_amount: Decimal
    paid_total: Decimal
    balance: Decimal
    fine_paid: bool


class StudentSummary(BaseModel):
    student_id: int
    borrowed: List[TransactionOut]
    remaining_capacity: int
    total_unpaid_fines: Decimal
