import os
from decimal import Decimal
from typing import Generator

# Override settings for tests before importing app modules
TEST_DATABASE_URL = "sqlite:///:memory:"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["JWT_SECRET"] = "test-secret-key-for-testing-only"
os.environ.pop("ADMIN_EMAIL", None)
os.environ.pop("ADMIN_PASSWORD", None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from kitab.main import app
from kitab.models.database import Base, get_db
from kitab.models.book import Book
from kitab.models.user import ROLE_ADMIN, ROLE_USER, User

# Create test database engine
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=test_engine)
    db_session = TestSessionLocal()
    try:
        yield db_session
    finally:
        db_session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def client(db: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _make_user(db: Session, email: str, name: str, nim: str | None, role: str) -> User:
    from kitab.api.auth import get_password_hash

    user = User(
        nim=nim,
        name=name,
        email=email,
        hashed_password=get_password_hash("testpassword123"),
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def test_user(db: Session) -> User:
    """Create a customer."""
    return _make_user(db, "santri@example.com", "Ahmad Fauzi", "2021001", ROLE_USER)


@pytest.fixture
def test_user2(db: Session) -> User:
    """Create a second customer."""
    return _make_user(db, "santri2@example.com", "Siti Aminah", "2021002", ROLE_USER)


@pytest.fixture
def admin_user(db: Session) -> User:
    """Create an admin."""
    return _make_user(db, "admin@example.com", "Admin Toko", None, ROLE_ADMIN)


@pytest.fixture
def test_book(db: Session) -> Book:
    """A book priced 150000 with 10 copies in stock."""
    book = Book(
        title="Fathul Qarib",
        author="Ibnu Qasim al-Ghazi",
        description="Syarah Matan Taqrib",
        price=Decimal("150000.00"),
        category="Fiqih",
        stock=10,
    )
    db.add(book)
    db.commit()
    db.refresh(book)
    return book


@pytest.fixture
def cheap_book(db: Session) -> Book:
    """A book priced 75000 with 3 copies in stock."""
    book = Book(
        title="Ta'limul Muta'allim",
        author="Az-Zarnuji",
        description="Adab menuntut ilmu",
        price=Decimal("75000.00"),
        category="Akhlak",
        stock=3,
    )
    db.add(book)
    db.commit()
    db.refresh(book)
    return book


def _login(client: TestClient, email: str) -> str:
    response = client.post(
        "/api/auth/login",
        json={"email": email, "password": "testpassword123"},
    )
    assert response.status_code == 200
    return response.json()["access_token"]


@pytest.fixture
def auth_token(client: TestClient, test_user: User) -> str:
    """Get auth token for the customer."""
    return _login(client, test_user.email)


@pytest.fixture
def auth_headers(auth_token: str) -> dict[str, str]:
    """Get auth headers with token."""
    return {"Authorization": f"Bearer {auth_token}"}


@pytest.fixture
def auth_headers2(client: TestClient, test_user2: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {_login(client, test_user2.email)}"}


@pytest.fixture
def admin_headers(client: TestClient, admin_user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {_login(client, admin_user.email)}"}
