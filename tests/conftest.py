import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from libdesk.api import routes
from libdesk.core.database import Base, get_db, make_engine
from libdesk.main import app
from libdesk.models.models import Book, Student, User
from libdesk.services.circulation import CirculationService
from libdesk.services.settings import SettingsProvider


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'libdesk-test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def settings(session_factory):
    return SettingsProvider(session_factory)


@pytest.fixture
def svc(db, settings):
    return CirculationService(db, settings)


def make_book(db, accession="ACC-1", copies=1, **kw):
    book = Book(accession_number=accession, title=kw.pop("title", "Matilda"), author=kw.pop("author", "Roald Dahl"),
                copies_total=copies, copies_available=copies, **kw)
    db.add(book)
    db.commit()
    return book


def make_student(db, number="S-1", status="active"):
    student = Student(student_number=number, first_name="Ana", last_name="Reyes", status=status)
    db.add(student)
    db.commit()
    return student


@pytest.fixture
def librarian(db):
    user = User(name="Lee Librarian", email="lee@school.example", role="librarian")
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def admin(db):
    user = User(name="Ava Admin", email="ava@school.example", role="admin")
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def student(db):
    return make_student(db)


@pytest.fixture
def book(db):
    return make_book(db)


@pytest.fixture
def client(session_factory, settings):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[routes.get_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()
