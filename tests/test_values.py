from datetime import datetime, timedelta

import pytest

from app.core.exceptions import (
    AlreadyReturned, CannotExtend, InvalidCopyCount, InvalidExtensionCount, InvalidIsbn,
    InvalidProgress, InvalidRentalPeriod,
)
from app.domain.entities import MAX_EXTENSIONS, Book, Rental
from app.domain.values import (
    ISBN, ReadingProgress, RentalPeriod, RentalStatus, resize_copies,
)

NOW = datetime(2024, 3, 1, 12, 0, 0)


@pytest.mark.parametrize("value", [-1, 101, 150])
def test_reading_progress_rejects_out_of_range(value):
    with pytest.raises(InvalidProgress):
        ReadingProgress(value)


def test_invalid_progress_is_a_value_error():
    with pytest.raises(ValueError):
        ReadingProgress(-5)


def test_reading_progress_bounds_and_increment():
    assert ReadingProgress(0).value == 0
    assert ReadingProgress(100).is_complete
    assert ReadingProgress(90).increment(30).value == 100
    assert ReadingProgress(10).increment(5).value == 15


def test_rental_period_rejects_due_before_rented():
    with pytest.raises(InvalidRentalPeriod):
        RentalPeriod(rented_at=NOW, due_date=NOW - timedelta(seconds=1))


def test_rental_period_extend_returns_new_value():
    period = RentalPeriod.create_new(14, now=NOW)
    extended = period.extend(7)
    assert period.due_date == NOW + timedelta(days=14)
    assert extended.due_date == NOW + timedelta(days=21)
    assert extended.rented_at == period.rented_at


def test_rental_period_overdue_is_derived():
    period = RentalPeriod.create_new(14, now=NOW)
    assert not period.is_overdue(NOW + timedelta(days=14))
    assert period.is_overdue(NOW + timedelta(days=15))
    returned = period.mark_returned(NOW + timedelta(days=20))
    assert not returned.is_overdue(NOW + timedelta(days=30))


def test_rental_period_days_remaining():
    period = RentalPeriod.create_new(14, now=NOW)
    assert period.days_remaining(NOW) == 14
    assert period.days_remaining(NOW + timedelta(days=40)) == 0
    assert period.mark_returned(NOW).days_remaining(NOW) == 0


def test_isbn_normalises_separators():
    assert ISBN("978-0-306-40615-7").value == "9780306406157"
    assert str(ISBN("0 306 40615 2")) == "0306406152"


@pytest.mark.parametrize("raw", ["", "12345", "978-0-306-4061X-7", "12345678901"])
def test_isbn_rejects_malformed(raw):
    with pytest.raises(InvalidIsbn):
        ISBN(raw)


def test_resize_copies_keeps_rented_copies_out():
    # 3 total, 1 available => 2 rented
    assert resize_copies(3, 1, 5) == 3
    assert resize_copies(3, 1, 2) == 0
    assert resize_copies(3, 1, 1) == 0
    with pytest.raises(InvalidCopyCount):
        resize_copies(3, 1, -1)


def test_book_copy_invariant():
    with pytest.raises(InvalidCopyCount):
        Book(id=1, title="t", author="a", total_copies=1, available_copies=2)
    with pytest.raises(InvalidCopyCount):
        Book(id=1, title="t", author="a", total_copies=1, available_copies=-1)
    book = Book.new("t", "a", 4)
    assert book.available_copies == 4 and book.version == 1


def test_rental_starts_active():
    rental = Rental.start(7, 1, 14, now=NOW)
    assert rental.status is RentalStatus.ACTIVE
    assert rental.extension_count == 0
    assert rental.progress.value == 0


@pytest.mark.parametrize("count", [-1, MAX_EXTENSIONS + 1])
def test_rental_rejects_extension_count_out_of_range(count):
    period = RentalPeriod.create_new(14, NOW)
    with pytest.raises(InvalidExtensionCount):
        Rental(id=None, user_id=7, book_id=1, period=period, extension_count=count)


def test_rental_extension_limit():
    rental = Rental.start(7, 1, 14, now=NOW)
    for _ in range(MAX_EXTENSIONS):
        rental = rental.extend(7, now=NOW)
    assert rental.extension_count == MAX_EXTENSIONS
    assert rental.period.due_date == NOW + timedelta(days=14 + 7 * MAX_EXTENSIONS)
    assert not rental.can_extend(NOW)
    with pytest.raises(CannotExtend, match="extension limit"):
        rental.extend(7, now=NOW)


def test_rental_cannot_extend_when_overdue():
    rental = Rental.start(7, 1, 14, now=NOW)
    with pytest.raises(CannotExtend, match="overdue"):
        rental.extend(7, now=NOW + timedelta(days=15))


def test_completed_rental_is_terminal():
    rental = Rental.start(7, 1, 14, now=NOW).complete(now=NOW + timedelta(days=2))
    assert rental.status is RentalStatus.COMPLETED
    assert rental.progress.value == 100
    assert rental.period.returned_at == NOW + timedelta(days=2)
    with pytest.raises(AlreadyReturned):
        rental.complete(now=NOW)
    with pytest.raises(CannotExtend, match="status is completed"):
        rental.extend(7, now=NOW)
    with pytest.raises(AlreadyReturned):
        rental.with_progress(ReadingProgress(50))
