import os

# keep app.main from creating ./elibrary.db on import
os.environ.setdefault("ELIB_DB", "sqlite://")

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import get_db, init_db
from app.domain.entities import Book
from app.main import app
from app.repositories.memory import (
    InMemoryBookRepository, InMemoryRentalRepository, InMemoryStore, InMemoryUnitOfWork,
)
from app.repositories.sqlalchemy_repositories import (
    SqlAlchemyBookRepository, SqlAlchemyRentalRepository, SqlAlchemyUnitOfWork,
)
from app.services.book_service import BookService
from app.services.rental_service import RentalService


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class Backend:
    """One persistence implementation wired into both services."""

    def __init__(self, books, rentals, uow, clock):
        self.books = books
        self.rentals = rentals
        self.uow = uow
        self.clock = clock
        self.rental_service = RentalService(books, rentals, uow, clock=clock)
        self.book_service = BookService(books, uow)

    def add_book(self, total_copies=1, title="Dune", author="Frank Herbert", **fields) -> Book:
        return self.book_service.create_book(title, author, total_copies, **fields)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 1, 12, 0, 0))


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def memory_backend(store, clock):
    return Backend(InMemoryBookRepository(store), InMemoryRentalRepository(store),
                   InMemoryUnitOfWork(store), clock)


@pytest.fixture
def sql_backend(db, clock):
    return Backend(SqlAlchemyBookRepository(db), SqlAlchemyRentalRepository(db),
                   SqlAlchemyUnitOfWork(db), clock)


@pytest.fixture(params=["memory", "sqlalchemy"])
def backend(request):
    name = "memory_backend" if request.param == "memory" else "sql_backend"
    return request.getfixturevalue(name)


@pytest.fixture
def client(engine):
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def override_get_db():
        session = TestingSession()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
