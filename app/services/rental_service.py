"""Rental workflow: rent, return, extend and reading progress.

The availability check on the book snapshot is only a shortcut.  The
version-guarded decrement/increment inside ``run_atomically`` is the real
guard, and a failed guard surfaces as :class:`OptimisticLockConflict` so the
caller can re-read and retry.  Nothing here retries on its own; use
:func:`retry_on_conflict` for a bounded retry.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, TypeVar

from app.core.exceptions import (
    ActiveRentalExists, AlreadyReturned, BookNotAvailable, BookNotFound,
    OptimisticLockConflict, RentalNotFound,
)
from app.domain.entities import DEFAULT_RENTAL_DAYS, Book, Rental
from app.domain.values import ReadingProgress, utcnow
from app.repositories.base import BookRepository, RentalRepository, UnitOfWork

logger = logging.getLogger("elibrary.rentals")

T = TypeVar("T")


@dataclass(frozen=True)
class RentalView:
    """A rental plus the derived fields and book snapshot shown to clients."""

    rental: Rental
    is_overdue: bool
    can_extend: bool
    days_remaining: int
    book: Optional[Book] = None


class RentalService:
    def __init__(self, books: BookRepository, rentals: RentalRepository,
                 unit_of_work: UnitOfWork, clock: Callable[[], datetime] = utcnow):
        self.books = books
        self.rentals = rentals
        self.uow = unit_of_work
        self.clock = clock

    def _load_rental(self, rental_id: int, user_id: int) -> Rental:
        rental = self.rentals.find_by_id_for_user(rental_id, user_id)
        if rental is None:
            raise RentalNotFound()
        return rental

    def _save_active(self, rental: Rental) -> Rental:
        # a concurrent return may have completed the row since it was loaded
        saved = self.rentals.save_if_active(rental)
        if saved is None:
            raise AlreadyReturned()
        return saved

    def rent_book(self, user_id: int, book_id: int, rental_days: int = DEFAULT_RENTAL_DAYS) -> Rental:
        book = self.books.find_by_id(book_id)
        if book is None:
            raise BookNotFound(book_id)
        if not book.is_available:
            raise BookNotAvailable()
        if self.rentals.has_active_rental(user_id, book_id):
            raise ActiveRentalExists()

        def reserve() -> Rental:
            if not self.books.decrement_availability(book_id, book.version):
                raise OptimisticLockConflict("Book", book_id, book.version)
            return self.rentals.save(Rental.start(user_id, book_id, rental_days, now=self.clock()))

        try:
            rental = self.uow.run_atomically(reserve)
        except OptimisticLockConflict:
            logger.warning(f"Conflict renting book {book_id} for user {user_id} at version {book.version}")
            raise
        logger.info(f"User {user_id} rented book {book_id} rental {rental.id}")
        return rental

    def return_book(self, rental_id: int, user_id: int) -> Rental:
        rental = self._load_rental(rental_id, user_id)
        if rental.status.is_completed:
            raise AlreadyReturned()
        book = self.books.find_by_id(rental.book_id)
        if book is None:
            raise BookNotFound(rental.book_id)
        completed = rental.complete(now=self.clock())

        def release() -> Rental:
            saved = self._save_active(completed)
            if not self.books.increment_availability(book.id, book.version):
                raise OptimisticLockConflict("Book", book.id, book.version)
            return saved

        try:
            saved = self.uow.run_atomically(release)
        except OptimisticLockConflict:
            logger.warning(f"Conflict returning rental {rental_id} for book {book.id} at version {book.version}")
            raise
        logger.info(f"Rental {rental_id} returned by user {user_id}")
        return saved

    def extend_rental(self, rental_id: int, user_id: int, extension_days: int = DEFAULT_RENTAL_DAYS) -> Rental:
        rental = self._load_rental(rental_id, user_id)
        extended = rental.extend(extension_days, now=self.clock())
        saved = self.uow.run_atomically(lambda: self._save_active(extended))
        logger.info(f"Rental {rental_id} extended by {extension_days} days "
                    f"({saved.extension_count} extension(s))")
        return saved

    def update_reading_progress(self, rental_id: int, user_id: int, progress: int) -> Rental:
        value = ReadingProgress(progress)
        rental = self._load_rental(rental_id, user_id)
        updated = rental.with_progress(value)
        return self.uow.run_atomically(lambda: self._save_active(updated))

    def _view(self, rental: Rental, book: Optional[Book] = None) -> RentalView:
        now = self.clock()
        return RentalView(
            rental=rental,
            is_overdue=rental.is_overdue(now),
            can_extend=rental.can_extend(now),
            days_remaining=rental.period.days_remaining(now),
            book=book,
        )

    def get_rental(self, rental_id: int, user_id: int) -> RentalView:
        rental = self._load_rental(rental_id, user_id)
        return self._view(rental, self.books.find_by_id(rental.book_id))

    def list_rentals(self, user_id: int, active_only: bool = False) -> List[RentalView]:
        rentals = self.rentals.list_for_user(user_id, active_only=active_only)
        books = {}
        for rental in rentals:
            if rental.book_id not in books:
                books[rental.book_id] = self.books.find_by_id(rental.book_id)
        return [self._view(r, books[r.book_id]) for r in rentals]


def retry_on_conflict(operation: Callable[[], T], attempts: int = 3, backoff: float = 0.05,
                      sleep: Callable[[float], None] = time.sleep) -> T:
    """Run ``operation`` up to ``attempts`` times while it raises a conflict.

    Waits ``backoff * attempt`` seconds between tries and re-raises the last
    :class:`OptimisticLockConflict` once the attempts are used up.  Any other
    error propagates immediately.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except OptimisticLockConflict:
            if attempt == attempts:
                raise
            logger.warning(f"Optimistic lock conflict, retrying ({attempt}/{attempts})")
            sleep(backoff * attempt)
