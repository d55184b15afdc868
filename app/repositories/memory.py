"""In-memory repositories with the same contract as the SQLAlchemy ones.

All three share one :class:`InMemoryStore`.  Entities are immutable, so a
shallow copy of the dicts is a full snapshot; ``run_atomically`` restores
that snapshot when the wrapped function raises.
"""

import threading
from dataclasses import replace
from typing import Dict, List, Optional, Set

from app.core.exceptions import ActiveRentalExists, RentalNotFound
from app.domain.entities import Book, Rental


class InMemoryStore:
    def __init__(self):
        self.lock = threading.RLock()
        self.books: Dict[int, Book] = {}
        self.deleted: Set[int] = set()
        self.rentals: Dict[int, Rental] = {}
        self._ids = {"book": 0, "rental": 0}

    def next_id(self, kind: str) -> int:
        self._ids[kind] += 1
        return self._ids[kind]

    def snapshot(self):
        return dict(self.books), set(self.deleted), dict(self.rentals), dict(self._ids)

    def restore(self, state) -> None:
        self.books, self.deleted, self.rentals, self._ids = state


class InMemoryBookRepository:
    def __init__(self, store: InMemoryStore):
        self.store = store

    def _live(self, book_id: int) -> Optional[Book]:
        if book_id in self.store.deleted:
            return None
        return self.store.books.get(book_id)

    def _guarded(self, book_id: int, expected_version: int) -> Optional[Book]:
        book = self._live(book_id)
        if book is None or book.version != expected_version:
            return None
        return book

    def find_by_id(self, book_id: int) -> Optional[Book]:
        with self.store.lock:
            return self._live(book_id)

    def find_by_isbn(self, isbn: str) -> Optional[Book]:
        with self.store.lock:
            for book_id, book in self.store.books.items():
                if book_id not in self.store.deleted and book.isbn and str(book.isbn) == isbn:
                    return book
        return None

    def list(self, q: Optional[str] = None, skip: int = 0, limit: int = 20) -> List[Book]:
        with self.store.lock:
            books = [b for i, b in self.store.books.items() if i not in self.store.deleted]
        if q:
            term = q.lower()
            books = [b for b in books if term in b.title.lower() or term in b.author.lower()]
        books.sort(key=lambda b: b.title)
        return books[skip:skip + limit]

    def create(self, book: Book) -> Book:
        with self.store.lock:
            created = replace(book, id=self.store.next_id("book"),
                              available_copies=book.total_copies, version=1)
            self.store.books[created.id] = created
            return created

    def update_with_lock(self, book: Book, expected_version: int) -> Optional[Book]:
        with self.store.lock:
            if self._guarded(book.id, expected_version) is None:
                return None
            updated = replace(book, version=expected_version + 1)
            self.store.books[book.id] = updated
            return updated

    def delete_with_lock(self, book_id: int, expected_version: int) -> bool:
        with self.store.lock:
            book = self._guarded(book_id, expected_version)
            if book is None:
                return False
            self.store.books[book_id] = replace(book, version=book.version + 1)
            self.store.deleted.add(book_id)
            return True

    def decrement_availability(self, book_id: int, expected_version: int) -> bool:
        with self.store.lock:
            book = self._guarded(book_id, expected_version)
            if book is None or book.available_copies <= 0:
                return False
            self.store.books[book_id] = replace(
                book, available_copies=book.available_copies - 1, version=book.version + 1)
            return True

    def increment_availability(self, book_id: int, expected_version: int) -> bool:
        with self.store.lock:
            book = self._guarded(book_id, expected_version)
            if book is None or book.available_copies >= book.total_copies:
                return False
            self.store.books[book_id] = replace(
                book, available_copies=book.available_copies + 1, version=book.version + 1)
            return True

    def count_active_rentals(self, book_id: int) -> int:
        with self.store.lock:
            return sum(1 for r in self.store.rentals.values() if r.book_id == book_id and r.is_active)


class InMemoryRentalRepository:
    def __init__(self, store: InMemoryStore):
        self.store = store

    def has_active_rental(self, user_id: int, book_id: int) -> bool:
        with self.store.lock:
            return any(
                r.user_id == user_id and r.book_id == book_id and r.is_active
                for r in self.store.rentals.values()
            )

    def find_by_id_for_user(self, rental_id: int, user_id: int) -> Optional[Rental]:
        with self.store.lock:
            rental = self.store.rentals.get(rental_id)
        if rental is None or rental.user_id != user_id:
            return None
        return rental

    def list_for_user(self, user_id: int, active_only: bool = False) -> List[Rental]:
        with self.store.lock:
            rentals = [r for r in self.store.rentals.values() if r.user_id == user_id]
        if active_only:
            rentals = [r for r in rentals if r.is_active]
        return sorted(rentals, key=lambda r: (r.period.rented_at, r.id), reverse=True)

    def save(self, rental: Rental) -> Rental:
        with self.store.lock:
            if rental.id is None:
                if rental.is_active and self.has_active_rental(rental.user_id, rental.book_id):
                    raise ActiveRentalExists()
                rental = replace(rental, id=self.store.next_id("rental"))
            elif rental.id not in self.store.rentals:
                raise RentalNotFound()
            self.store.rentals[rental.id] = rental
            return rental

    def save_if_active(self, rental: Rental) -> Optional[Rental]:
        with self.store.lock:
            current = self.store.rentals.get(rental.id)
            if current is None or not current.is_active:
                return None
            self.store.rentals[rental.id] = rental
            return rental


class InMemoryUnitOfWork:
    def __init__(self, store: InMemoryStore):
        self.store = store

    def run_atomically(self, fn):
        with self.store.lock:
            state = self.store.snapshot()
            try:
                return fn()
            except Exception:
                self.store.restore(state)
                raise
