import logging
from dataclasses import replace
from typing import List, Optional

from app.core.exceptions import (
    BookHasActiveRentals, BookNotFound, DuplicateIsbn, OptimisticLockConflict,
)
from app.domain.entities import Book
from app.domain.values import ISBN, resize_copies
from app.repositories.base import BookRepository, UnitOfWork

logger = logging.getLogger("elibrary.books")

UPDATABLE_FIELDS = ("title", "author", "isbn", "genre", "description", "publication_year")


class BookService:
    def __init__(self, books: BookRepository, unit_of_work: UnitOfWork):
        self.books = books
        self.uow = unit_of_work

    def create_book(self, title: str, author: str, total_copies: int = 1,
                    isbn: Optional[str] = None, **fields) -> Book:
        isbn_value = ISBN(isbn) if isbn else None
        if isbn_value and self.books.find_by_isbn(str(isbn_value)):
            raise DuplicateIsbn()
        book = Book.new(title.strip(), author.strip(), total_copies, isbn=isbn_value, **fields)
        created = self.uow.run_atomically(lambda: self.books.create(book))
        logger.info(f"Created book id={created.id} title={created.title}")
        return created

    def get_book(self, book_id: int) -> Book:
        book = self.books.find_by_id(book_id)
        if book is None:
            raise BookNotFound(book_id)
        return book

    def list_books(self, q: Optional[str] = None, skip: int = 0, limit: int = 20) -> List[Book]:
        return self.books.list(q=q, skip=skip, limit=limit)

    def update_book(self, book_id: int, expected_version: int, **changes) -> Book:
        book = self.get_book(book_id)
        data = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS and v is not None}
        if "isbn" in data:
            data["isbn"] = ISBN(data["isbn"])
            other = self.books.find_by_isbn(str(data["isbn"]))
            if other and other.id != book_id:
                raise DuplicateIsbn()
        new_total = changes.get("total_copies")
        if new_total is not None:
            # rented copies stay out; availability clamps at 0 when shrinking below them
            data["available_copies"] = resize_copies(book.total_copies, book.available_copies, new_total)
            data["total_copies"] = new_total
        updated = replace(book, **data)

        result = self.uow.run_atomically(lambda: self.books.update_with_lock(updated, expected_version))
        if result is None:
            logger.warning(f"Conflict updating book id={book_id} at version {expected_version}")
            raise OptimisticLockConflict("Book", book_id, expected_version, book.version)
        logger.info(f"Updated book id={book_id} version={result.version}")
        return result

    def delete_book(self, book_id: int, expected_version: int) -> None:
        book = self.get_book(book_id)
        active = self.books.count_active_rentals(book_id)
        if active > 0:
            raise BookHasActiveRentals(book_id, active)
        deleted = self.uow.run_atomically(lambda: self.books.delete_with_lock(book_id, expected_version))
        if not deleted:
            logger.warning(f"Conflict deleting book id={book_id} at version {expected_version}")
            raise OptimisticLockConflict("Book", book_id, expected_version, book.version)
        logger.info(f"Deleted book id={book_id}")
