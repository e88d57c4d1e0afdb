"""Pytest configuration and fixtures."""

import os

# Settings are read at import time; point every store at memory first
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("HEAD_OFFICE_DATABASE_URL", "sqlite://")
os.environ.setdefault("USER_SYNC_ENABLED", "false")
os.environ.setdefault("HELD_ORDER_CLEANUP_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("TAX_RATE", "0.15")
os.environ.setdefault("BRANCH_CODE", "B001")

import pytest  # noqa: E402
from decimal import Decimal  # noqa: E402
from typing import Generator  # noqa: E402

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from branchpos.core.security import create_access_token  # noqa: E402
from branchpos.db.base import Base, HeadOfficeBase  # noqa: E402
from branchpos.db.session import get_db  # noqa: E402
from branchpos.main import app  # noqa: E402
# Import all models to ensure they're registered with the metadata
from branchpos.models import *  # noqa: E402,F401,F403
from branchpos.models.product import Product  # noqa: E402
from branchpos.models.table import Table  # noqa: E402
from branchpos.services.order_lifecycle_service import OrderLifecycleService  # noqa: E402

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"


def make_engine(metadata=Base.metadata):
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    metadata.create_all(bind=engine)
    return engine


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = make_engine()
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def head_office_engine():
    """Head office store with its own metadata."""
    engine = make_engine(HeadOfficeBase.metadata)
    yield engine
    HeadOfficeBase.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    # Disable rate limiters during tests to avoid flaky failures
    from branchpos.core.rate_limit import limiter
    limiter.enabled = False
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_token() -> str:
    """Token for a cashier; routes only need the acting user's id."""
    return create_access_token(data={"sub": "cashier-1", "email": "cashier@example.com", "role": "cashier"})


@pytest.fixture
def auth_headers(auth_token: str) -> dict:
    """Get authentication headers."""
    return {"Authorization": f"Bearer {auth_token}"}


@pytest.fixture
def service(db_session: Session) -> OrderLifecycleService:
    return OrderLifecycleService(db_session, tax_rate=Decimal("0.15"), branch_code="B001")


@pytest.fixture
def burger(db_session: Session) -> Product:
    product = Product(sku="BRG-001", name_en="Burger", name_ar="برجر", price=Decimal("10.00"), stock_level=Decimal("50"))
    db_session.add(product)
    db_session.commit()
    db_session.refresh(product)
    return product


@pytest.fixture
def fries(db_session: Session) -> Product:
    product = Product(sku="FRY-001", name_en="Fries", price=Decimal("10.00"), stock_level=Decimal("1"))
    db_session.add(product)
    db_session.commit()
    db_session.refresh(product)
    return product


@pytest.fixture
def tables(db_session: Session) -> list:
    """Tables 1 to 6; table 6 is out of service."""
    rows = [
        Table(number=n, name=f"Table {n}", capacity=4, zone="Main", is_active=(n != 6))
        for n in range(1, 7)
    ]
    db_session.add_all(rows)
    db_session.commit()
    return rows
