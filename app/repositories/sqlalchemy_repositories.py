"""SQLAlchemy implementation of the book ledger and rental repositories.

Every conditional write is a single ``UPDATE ... WHERE id = :id AND
version = :expected AND deleted_at IS NULL`` and succeeds only when exactly
one row matched.  Rental updates are guarded the same way on
``status = 'active'``.  Repositories only flush; :class:`SqlAlchemyUnitOfWork`
owns commit and rollback.
"""

import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import ActiveRentalExists, RentalNotFound
from app.domain.entities import Book, Rental
from app.domain.values import ISBN, ReadingProgress, RentalPeriod, RentalStatus, utcnow
from app.models import models

logger = logging.getLogger("elibrary.db")

ACTIVE = RentalStatus.ACTIVE.value


def book_to_entity(model: models.Book) -> Book:
    return Book(
        id=model.id,
        title=model.title,
        author=model.author,
        isbn=ISBN(model.isbn) if model.isbn else None,
        genre=model.genre,
        description=model.description,
        publication_year=model.publication_year,
        total_copies=model.total_copies,
        available_copies=model.available_copies,
        version=model.version,
    )


def rental_to_entity(model: models.Rental) -> Rental:
    return Rental(
        id=model.id,
        user_id=model.user_id,
        book_id=model.book_id,
        period=RentalPeriod(model.rented_at, model.due_date, model.returned_at),
        status=RentalStatus(model.status),
        progress=ReadingProgress(model.reading_progress),
        extension_count=model.extension_count,
    )


class SqlAlchemyBookRepository:
    def __init__(self, db: Session):
        self.db = db

    def _live(self):
        return self.db.query(models.Book).filter(models.Book.deleted_at.is_(None))

    def _guarded(self, book_id: int, expected_version: int):
        return self._live().filter(
            models.Book.id == book_id,
            models.Book.version == expected_version,
        )

    def find_by_id(self, book_id: int) -> Optional[Book]:
        model = self._live().filter(models.Book.id == book_id).first()
        return book_to_entity(model) if model else None

    def find_by_isbn(self, isbn: str) -> Optional[Book]:
        model = self._live().filter(models.Book.isbn == isbn).first()
        return book_to_entity(model) if model else None

    def list(self, q: Optional[str] = None, skip: int = 0, limit: int = 20) -> List[Book]:
        query = self._live()
        if q:
            like_q = f"%{q}%"
            query = query.filter((models.Book.title.ilike(like_q)) | (models.Book.author.ilike(like_q)))
        return [book_to_entity(m) for m in query.order_by(models.Book.title).offset(skip).limit(limit).all()]

    def create(self, book: Book) -> Book:
        model = models.Book(
            title=book.title,
            author=book.author,
            isbn=str(book.isbn) if book.isbn else None,
            genre=book.genre,
            description=book.description,
            publication_year=book.publication_year,
            total_copies=book.total_copies,
            # new books have all copies available
            available_copies=book.total_copies,
            version=1,
        )
        self.db.add(model)
        self.db.flush()
        return book_to_entity(model)

    def update_with_lock(self, book: Book, expected_version: int) -> Optional[Book]:
        affected = self._guarded(book.id, expected_version).update({
            models.Book.title: book.title,
            models.Book.author: book.author,
            models.Book.isbn: str(book.isbn) if book.isbn else None,
            models.Book.genre: book.genre,
            models.Book.description: book.description,
            models.Book.publication_year: book.publication_year,
            models.Book.total_copies: book.total_copies,
            models.Book.available_copies: book.available_copies,
            models.Book.version: models.Book.version + 1,
            models.Book.updated_at: utcnow(),
        }, synchronize_session="fetch")
        if affected == 0:
            return None
        return self.find_by_id(book.id)

    def delete_with_lock(self, book_id: int, expected_version: int) -> bool:
        now = utcnow()
        affected = self._guarded(book_id, expected_version).update({
            models.Book.deleted_at: now,
            models.Book.version: models.Book.version + 1,
            models.Book.updated_at: now,
        }, synchronize_session="fetch")
        return affected > 0

    def decrement_availability(self, book_id: int, expected_version: int) -> bool:
        affected = self._guarded(book_id, expected_version).filter(
            models.Book.available_copies > 0,
        ).update({
            models.Book.available_copies: models.Book.available_copies - 1,
            models.Book.version: models.Book.version + 1,
            models.Book.updated_at: utcnow(),
        }, synchronize_session="fetch")
        return affected > 0

    def increment_availability(self, book_id: int, expected_version: int) -> bool:
        affected = self._guarded(book_id, expected_version).filter(
            models.Book.available_copies < models.Book.total_copies,
        ).update({
            models.Book.available_copies: models.Book.available_copies + 1,
            models.Book.version: models.Book.version + 1,
            models.Book.updated_at: utcnow(),
        }, synchronize_session="fetch")
        return affected > 0

    def count_active_rentals(self, book_id: int) -> int:
        return self.db.query(models.Rental).filter(
            models.Rental.book_id == book_id,
            models.Rental.status == ACTIVE,
        ).count()


class SqlAlchemyRentalRepository:
    def __init__(self, db: Session):
        self.db = db

    def has_active_rental(self, user_id: int, book_id: int) -> bool:
        query = self.db.query(models.Rental.id).filter(
            models.Rental.user_id == user_id,
            models.Rental.book_id == book_id,
            models.Rental.status == ACTIVE,
            models.Rental.returned_at.is_(None),
        )
        return self.db.query(query.exists()).scalar()

    def find_by_id_for_user(self, rental_id: int, user_id: int) -> Optional[Rental]:
        model = self.db.query(models.Rental).filter(
            models.Rental.id == rental_id,
            models.Rental.user_id == user_id,
        ).first()
        return rental_to_entity(model) if model else None

    def list_for_user(self, user_id: int, active_only: bool = False) -> List[Rental]:
        query = self.db.query(models.Rental).filter(models.Rental.user_id == user_id)
        if active_only:
            query = query.filter(models.Rental.status == ACTIVE)
        query = query.order_by(models.Rental.rented_at.desc(), models.Rental.id.desc())
        return [rental_to_entity(m) for m in query.all()]

    def save(self, rental: Rental) -> Rental:
        if rental.id is None:
            model = models.Rental(user_id=rental.user_id, book_id=rental.book_id)
            self.db.add(model)
        else:
            model = self.db.get(models.Rental, rental.id)
            if model is None:
                raise RentalNotFound()
        model.rented_at = rental.period.rented_at
        model.due_date = rental.period.due_date
        model.returned_at = rental.period.returned_at
        model.status = rental.status.value
        model.reading_progress = rental.progress.value
        model.extension_count = rental.extension_count
        try:
            self.db.flush()
        except IntegrityError as exc:
            # the partial unique index on active (user_id, book_id) fired
            message = str(exc.orig)
            if "uq_rentals_active_user_book" in message or "rentals.user_id, rentals.book_id" in message:
                raise ActiveRentalExists() from exc
            raise
        return rental_to_entity(model)

    def save_if_active(self, rental: Rental) -> Optional[Rental]:
        affected = self.db.query(models.Rental).filter(
            models.Rental.id == rental.id,
            models.Rental.status == ACTIVE,
        ).update({
            models.Rental.due_date: rental.period.due_date,
            models.Rental.returned_at: rental.period.returned_at,
            models.Rental.status: rental.status.value,
            models.Rental.reading_progress: rental.progress.value,
            models.Rental.extension_count: rental.extension_count,
            models.Rental.updated_at: utcnow(),
        }, synchronize_session="fetch")
        if affected == 0:
            return None
        model = self.db.get(models.Rental, rental.id)
        return rental_to_entity(model)


class SqlAlchemyUnitOfWork:
    """Commit everything ``fn`` wrote, or roll all of it back."""

    def __init__(self, db: Session):
        self.db = db

    def run_atomically(self, fn):
        try:
            result = fn()
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return result
