import pytest

from app.core.exceptions import (
    BookHasActiveRentals, BookNotFound, DuplicateIsbn, InvalidIsbn, OptimisticLockConflict,
)


def test_create_book(backend):
    book = backend.add_book(total_copies=3, isbn="978-0-306-40615-7", genre="SF")
    assert book.version == 1
    assert (book.total_copies, book.available_copies) == (3, 3)
    assert str(book.isbn) == "9780306406157"
    assert backend.book_service.get_book(book.id) == book


def test_create_book_rejects_duplicate_and_malformed_isbn(backend):
    backend.add_book(isbn="9780306406157")
    with pytest.raises(DuplicateIsbn):
        backend.add_book(title="Other", isbn="978-0-306-40615-7")
    with pytest.raises(InvalidIsbn):
        backend.add_book(title="Other", isbn="not-an-isbn")


def test_get_missing_book(backend):
    with pytest.raises(BookNotFound):
        backend.book_service.get_book(42)


def test_update_book_requires_current_version(backend):
    book = backend.add_book()
    updated = backend.book_service.update_book(book.id, 1, title="Dune Messiah")
    assert updated.title == "Dune Messiah"
    assert updated.version == 2

    with pytest.raises(OptimisticLockConflict) as excinfo:
        backend.book_service.update_book(book.id, 1, title="Children of Dune")
    assert excinfo.value.actual_version == 2
    assert backend.book_service.get_book(book.id).title == "Dune Messiah"


def test_update_total_copies_keeps_rented_copies_out(backend):
    book = backend.add_book(total_copies=3)
    backend.rental_service.rent_book(7, book.id, 14)
    backend.rental_service.rent_book(8, book.id, 14)
    current = backend.book_service.get_book(book.id)

    grown = backend.book_service.update_book(book.id, current.version, total_copies=5)
    assert (grown.total_copies, grown.available_copies) == (5, 3)

    shrunk = backend.book_service.update_book(book.id, grown.version, total_copies=1)
    assert (shrunk.total_copies, shrunk.available_copies) == (1, 0)


def test_delete_blocked_by_active_rentals(backend):
    book = backend.add_book()
    rental = backend.rental_service.rent_book(7, book.id, 14)
    with pytest.raises(BookHasActiveRentals) as excinfo:
        backend.book_service.delete_book(book.id, 2)
    assert excinfo.value.active_rentals == 1

    backend.rental_service.return_book(rental.id, 7)
    current = backend.book_service.get_book(book.id)
    backend.book_service.delete_book(book.id, current.version)

    with pytest.raises(BookNotFound):
        backend.book_service.get_book(book.id)
    assert backend.books.decrement_availability(book.id, current.version + 1) is False


def test_delete_with_stale_version(backend):
    book = backend.add_book()
    backend.book_service.update_book(book.id, 1, genre="SF")
    with pytest.raises(OptimisticLockConflict):
        backend.book_service.delete_book(book.id, 1)
    assert backend.book_service.get_book(book.id).genre == "SF"


def test_list_books(backend):
    backend.add_book(title="Dune")
    backend.add_book(title="Emma", author="Jane Austen")
    assert [b.title for b in backend.book_service.list_books()] == ["Dune", "Emma"]
    assert [b.title for b in backend.book_service.list_books(q="dune")] == ["Dune"]
    assert [b.title for b in backend.book_service.list_books(skip=1, limit=1)] == ["Emma"]
