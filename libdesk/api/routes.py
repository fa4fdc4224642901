from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional
from datetime import date

from libdesk.core.database import SessionLocal, get_db, transactional
from libdesk.core.errors import NotFound, ValidationError
from libdesk.models import models
from libdesk.schemas import schemas
from libdesk.services.circulation import CirculationService
from libdesk.services.fines import FineCalculator
from libdesk.services.payments import PaymentLedger
from libdesk.services.settings import SettingsProvider

router = APIRouter()

_settings = SettingsProvider(SessionLocal)


def get_settings() -> SettingsProvider:
    return _settings


def get_circulation(db: Session = Depends(get_db), settings: SettingsProvider = Depends(get_settings)):
    return CirculationService(db, settings)


# -----------------------------
# Catalog & people
# -----------------------------
@router.post("/books/", response_model=schemas.BookOut)
def create_book(book_in: schemas.BookCreate, db: Session = Depends(get_db)):
    existing = db.query(models.Book).filter(models.Book.accession_number == book_in.accession_number).first()
    if existing:
        raise ValidationError("Accession number already exists", accession_number=book_in.accession_number)
    book = models.Book(
        accession_number=book_in.accession_number.strip(),
        title=book_in.title.strip(),
        author=book_in.author.strip(),
        isbn=book_in.isbn,
        copies_total=book_in.copies_total,
        copies_available=book_in.copies_total,
        condition=book_in.condition,
        status=models.BOOK_AVAILABLE,
    )
    with transactional(db):
        db.add(book)
    db.refresh(book)
    return book

@router.get("/books/", response_model=List[schemas.BookOut])
def list_books(q: Optional[str] = Query(None), status: Optional[str] = Query(None),
               on_shelf: Optional[bool] = Query(None), skip: int = 0, limit: int = 20,
               db: Session = Depends(get_db)):
    query = db.query(models.Book)
    if q:
        like_q = f"%{q}%"
        query = query.filter(
            models.Book.title.ilike(like_q) | models.Book.author.ilike(like_q)
            | models.Book.accession_number.ilike(like_q)
        )
    if status is not None:
        if status not in (models.BOOK_AVAILABLE, models.BOOK_UNAVAILABLE):
            raise ValidationError("Unknown book status", status=status)
        query = query.filter(models.Book.status == status)
    # on_shelf: at least one copy can be borrowed right now
    if on_shelf is True:
        query = query.filter(models.Book.status == models.BOOK_AVAILABLE, models.Book.copies_available > 0)
    elif on_shelf is False:
        query = query.filter(
            (models.Book.status != models.BOOK_AVAILABLE) | (models.Book.copies_available <= 0)
        )
    return query.order_by(models.Book.title, models.Book.accession_number).offset(skip).limit(limit).all()

@router.get("/books/{book_id}", response_model=schemas.BookOut)
def read_book(book_id: int, db: Session = Depends(get_db)):
    book = db.get(models.Book, book_id)
    if not book:
        raise NotFound("Book not found", book_id=book_id)
    return book

@router.post("/students/", response_model=schemas.StudentOut)
def create_student(student_in: schemas.StudentCreate, db: Session = Depends(get_db)):
    existing = db.query(models.Student).filter(models.Student.student_number == student_in.student_number).first()
    if existing:
        raise ValidationError("Student number already registered", student_number=student_in.student_number)
    student = models.Student(**student_in.model_dump())
    with transactional(db):
        db.add(student)
    db.refresh(student)
    return student

@router.post("/users/", response_model=schemas.UserOut)
def create_user(user_in: schemas.UserCreate, db: Session = Depends(get_db)):
    existing = db.query(models.User).filter(models.User.email == user_in.email).first()
    if existing:
        raise ValidationError("Email already registered", email=user_in.email)
    if user_in.role not in (models.ROLE_ADMIN, models.ROLE_LIBRARIAN):
        raise ValidationError("Unknown role", role=user_in.role)
    user = models.User(name=user_in.name.strip(), email=user_in.email.strip(), role=user_in.role)
    with transactional(db):
        db.add(user)
    db.refresh(user)
    return user


# -----------------------------
# Circulation
# -----------------------------
@router.get("/students/{student_id}/eligibility", response_model=schemas.Eligibility)
def eligibility(student_id: int, svc: CirculationService = Depends(get_circulation)):
    return svc.can_borrow(svc.repo.get_student(student_id))

@router.get("/students/{student_id}/summary", response_model=schemas.StudentSummary)
def student_summary(student_id: int, svc: CirculationService = Depends(get_circulation)):
    student = svc.repo.get_student(student_id)
    return schemas.StudentSummary(
        student_id=student.id,
        borrowed=[schemas.TransactionOut.model_validate(t) for t in svc.current_borrowed_books(student)],
        remaining_capacity=svc.remaining_capacity(student),
        total_unpaid_fines=svc.total_unpaid_fines(student),
    )

@router.post("/transactions/borrow", response_model=schemas.TransactionOut)
def borrow_book(req: schemas.BorrowRequest, svc: CirculationService = Depends(get_circulation)):
    student = svc.repo.get_student(req.student_id)
    book = svc.repo.get_book(req.book_id)
    librarian = svc.repo.get_user(req.librarian_id)
    return svc.borrow_book(student, book, librarian, due_date=req.due_date)

@router.post("/transactions/{transaction_id}/return", response_model=schemas.TransactionOut)
def return_book(transaction_id: int, req: schemas.ReturnRequest, svc: CirculationService = Depends(get_circulation)):
    transaction = svc.repo.get_transaction(transaction_id)
    return svc.return_book(transaction, condition=req.condition, notes=req.notes, returned_date=req.returned_date)

@router.get("/transactions/{transaction_id}/fine", response_model=schemas.FineBreakdown)
def fine_breakdown(transaction_id: int, svc: CirculationService = Depends(get_circulation)):
    return svc.get_fine_breakdown(svc.repo.get_transaction(transaction_id))

@router.get("/fines/calculate", response_model=schemas.FineBreakdown)
def calculate_fine(due_date: date, reference_date: date, svc: CirculationService = Depends(get_circulation)):
    return FineCalculator(svc.policy()).breakdown(due_date, reference_date)


# -----------------------------
# Fines
# -----------------------------
@router.post("/transactions/{transaction_id}/payments", response_model=schemas.PaymentResult)
def record_payment(transaction_id: int, req: schemas.PaymentRequest, db: Session = Depends(get_db)):
    transaction = db.get(models.Transaction, transaction_id)
    if not transaction:
        raise NotFound("Transaction not found", transaction_id=transaction_id)
    return PaymentLedger(db).record_payment(transaction, req.amount, req.method)

@router.post("/transactions/{transaction_id}/mark-paid", response_model=schemas.TransactionOut)
def mark_fine_paid(transaction_id: int, db: Session = Depends(get_db)):
    transaction = db.get(models.Transaction, transaction_id)
    if not transaction:
        raise NotFound("Transaction not found", transaction_id=transaction_id)
    return PaymentLedger(db).mark_fine_paid(transaction)

@router.post("/transactions/{transaction_id}/waive", response_model=schemas.TransactionOut)
def waive_fine(transaction_id: int, req: schemas.WaiveRequest, db: Session = Depends(get_db)):
    transaction = db.get(models.Transaction, transaction_id)
    if not transaction:
        raise NotFound("Transaction not found", transaction_id=transaction_id)
    admin = db.get(models.User, req.admin_id)
    if not admin:
        raise NotFound("User not found", user_id=req.admin_id)
    return PaymentLedger(db).waive_fine(transaction, req.reason, waived_by=admin)


# -----------------------------
# Settings
# -----------------------------
@router.get("/settings/")
def read_settings(settings: SettingsProvider = Depends(get_settings)) -> Dict[str, Any]:
    return {k: str(v) for k, v in settings.all().items()}

@router.put("/settings/{key}")
def update_setting(key: str, upd: schemas.SettingUpdate, settings: SettingsProvider = Depends(get_settings)):
    return {"key": key, "value": str(settings.set(key, upd.value))}
