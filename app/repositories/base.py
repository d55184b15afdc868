"""Persistence interfaces consumed by the services.

Two implementations exist: ``app.repositories.sqlalchemy_repositories`` (production) and
``app.repositories.memory`` (tests).  Conditional writes never raise for
contention; they report success as a bool or an optional.
"""

from typing import Callable, List, Optional, Protocol, TypeVar

from app.domain.entities import Book, Rental

T = TypeVar("T")


class BookRepository(Protocol):
    def find_by_id(self, book_id: int) -> Optional[Book]: ...

    def find_by_isbn(self, isbn: str) -> Optional[Book]: ...

    def list(self, q: Optional[str] = None, skip: int = 0, limit: int = 20) -> List[Book]: ...

    def create(self, book: Book) -> Book: ...

    def update_with_lock(self, book: Book, expected_version: int) -> Optional[Book]: ...

    def delete_with_lock(self, book_id: int, expected_version: int) -> bool: ...

    def decrement_availability(self, book_id: int, expected_version: int) -> bool: ...

    def increment_availability(self, book_id: int, expected_version: int) -> bool: ...

    def count_active_rentals(self, book_id: int) -> int: ...


class RentalRepository(Protocol):
    def has_active_rental(self, user_id: int, book_id: int) -> bool: ...

    def find_by_id_for_user(self, rental_id: int, user_id: int) -> Optional[Rental]: ...

    def list_for_user(self, user_id: int, active_only: bool = False) -> List[Rental]: ...

    def save(self, rental: Rental) -> Rental: ...

    def save_if_active(self, rental: Rental) -> Optional[Rental]: ...


class UnitOfWork(Protocol):
    def run_atomically(self, fn: Callable[[], T]) -> T: ...
