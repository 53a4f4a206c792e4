#configuracion de los test
import os
import sys
import tempfile
import uuid
from pathlib import Path
from typing import Callable, Generator

import pytest

# ======================================================
# Base de datos SQLite temporal (antes de importar app/)
# ======================================================
_DB_DIR = tempfile.mkdtemp(prefix="book-lending-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_DB_DIR}/test.db")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("LOCK_TIMEOUT_SECONDS", "5")
os.environ.setdefault("EVENT_POLL_SECONDS", "0.1")

# ======================================================
# Ajuste del sys.path para que 'app/' sea importable
# ======================================================
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

# ======================================================
# Imports de la aplicación
# ======================================================
from fastapi.testclient import TestClient

from app.main import app
from app.core.config import settings
from app.core.security import hash_password
from app.db.models import Book, Loan, LoanStatus, User, UserRole
from app.db.session import Base, SessionLocal, engine
from app.services.event_fanout import EventFanout
from app.services.keyed_lock import KeyedLock
from app.services.lending_coordinator import LendingCoordinator

Base.metadata.create_all(bind=engine)


# ======================================================
# DB SESSION FIXTURE
# ======================================================
@pytest.fixture
def db_session() -> Generator:
    """
    Provee una sesión limpia de DB para cada test.
    """
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def unique_isbn() -> Callable[[str], str]:
    def make(prefix: str = "ISBN") -> str:
        return f"{prefix}-{uuid.uuid4().hex[:10]}"

    return make


# ======================================================
# NÚCLEO: libros, usuarios y coordinador sin HTTP
# ======================================================
@pytest.fixture
def make_book(unique_isbn) -> Callable[..., int]:
    """Crea un libro con available_copies = total_copies y devuelve su id."""

    def make(total_copies: int = 1, title: str = "Libro de Pruebas") -> int:
        with SessionLocal() as db:
            book = Book(
                title=title,
                author="Autor Test",
                isbn=unique_isbn("CORE"),
                description="",
                total_copies=total_copies,
                available_copies=total_copies,
            )
            db.add(book)
            db.commit()
            return book.id

    return make


@pytest.fixture
def make_user() -> Callable[..., int]:
    def make(role: UserRole = UserRole.USER) -> int:
        suffix = uuid.uuid4().hex[:8]
        with SessionLocal() as db:
            user = User(
                username=f"u_{suffix}",
                email=f"u_{suffix}@example.com",
                hashed_password="not-a-real-hash",
                role=role,
            )
            db.add(user)
            db.commit()
            return user.id

    return make


def _load_book(book_id: int) -> Book | None:
    with SessionLocal() as db:
        return db.query(Book).filter(Book.id == book_id).first()


def _active_loan_count(book_id: int) -> int:
    with SessionLocal() as db:
        return (
            db.query(Loan)
            .filter(Loan.book_id == book_id, Loan.status == LoanStatus.ACTIVE)
            .count()
        )


@pytest.fixture
def load_book() -> Callable[[int], Book | None]:
    return _load_book


@pytest.fixture
def active_loans() -> Callable[[int], int]:
    return _active_loan_count


@pytest.fixture
def check_invariant() -> Callable[[int], None]:
    """available == max(0, total - activos) y 0 <= available <= total."""

    def check(book_id: int) -> None:
        book = _load_book(book_id)
        active = _active_loan_count(book_id)
        assert 0 <= book.available_copies <= book.total_copies
        assert book.available_copies == max(0, book.total_copies - active)

    return check


@pytest.fixture
def locks() -> KeyedLock:
    return KeyedLock()


@pytest.fixture
def coordinator(locks) -> LendingCoordinator:
    return LendingCoordinator(locks=locks, lock_timeout=5.0)


@pytest.fixture
def fanout() -> Generator[EventFanout, None, None]:
    f = EventFanout(queue_size=10)
    yield f
    f.close()


# ======================================================
# CLIENT FIXTURE
# ======================================================
@pytest.fixture(scope="session")
def client():
    """
    TestClient de FastAPI (con contexto, ejecuta el lifespan).
    """
    with TestClient(app) as c:
        yield c


# ======================================================
# ADMIN FIXTURES
# ======================================================
@pytest.fixture(scope="session")
def admin_credentials():
    return {"username": settings.BUILTIN_ADMIN_USERNAME, "password": settings.BUILTIN_ADMIN_PASSWORD}


@pytest.fixture(scope="session")
def admin_token(client: TestClient, admin_credentials):
    # el admin embebido lo crea el lifespan
    resp = client.post("/api/v1/auth/login", data=admin_credentials)
    assert resp.status_code == 200, resp.text
    return resp.json()["access_token"]


@pytest.fixture
def admin_headers(admin_token):
    return {"Authorization": f"Bearer {admin_token}"}


# ======================================================
# USER FIXTURES
# ======================================================
def register_user(client: TestClient) -> dict:
    """Registra un usuario nuevo y devuelve {'id', 'headers', 'username'}."""
    suffix = uuid.uuid4().hex[:8]
    payload = {
        "username": f"user_{suffix}",
        "email": f"user_{suffix}@example.com",
        "password": "secret123",
    }
    resp = client.post("/api/v1/auth/register", json=payload)
    assert resp.status_code == 201, resp.text
    data = resp.json()
    return {
        "id": data["user"]["id"],
        "username": payload["username"],
        "password": payload["password"],
        "headers": {"Authorization": f"Bearer {data['access_token']}"},
    }


@pytest.fixture
def member(client: TestClient) -> dict:
    return register_user(client)


@pytest.fixture
def other_member(client: TestClient) -> dict:
    return register_user(client)


@pytest.fixture
def member_headers(member) -> dict:
    return member["headers"]


@pytest.fixture
def create_book(client: TestClient, admin_headers, unique_isbn) -> Callable[..., dict]:
    def create(total_copies: int = 3, title: str = "Libro de Pruebas") -> dict:
        resp = client.post(
            "/api/v1/books/",
            json={
                "title": title,
                "author": "Autor Test",
                "isbn": unique_isbn("API"),
                "description": "Libro para pruebas",
                "total_copies": total_copies,
            },
            headers=admin_headers,
        )
        assert resp.status_code == 201, resp.text
        return resp.json()

    return create
