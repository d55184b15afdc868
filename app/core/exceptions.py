"""Typed errors raised by the rental and catalog services.

Every error carries the HTTP status the API layer should answer with and a
short machine readable ``code``.  The ledger itself never raises for
contention; the services turn a failed conditional write into
:class:`OptimisticLockConflict`.
"""

from typing import Optional


class LibraryError(Exception):
    status_code = 400
    code = "library_error"
    default_message = "Library request failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


# 404
class NotFoundError(LibraryError):
    status_code = 404
    code = "not_found"


class BookNotFound(NotFoundError):
    code = "book_not_found"
    default_message = "Book not found"

    def __init__(self, book_id=None):
        super().__init__(f"Book with ID {book_id} not found" if book_id is not None else None)


class RentalNotFound(NotFoundError):
    code = "rental_not_found"
    default_message = "Rental not found"


class UserNotFound(NotFoundError):
    code = "user_not_found"
    default_message = "User not found"


# 409
class DomainStateError(LibraryError):
    status_code = 409
    code = "conflict"


class BookNotAvailable(DomainStateError):
    code = "book_not_available"
    default_message = "Book is currently unavailable"


class ActiveRentalExists(DomainStateError):
    code = "active_rental_exists"
    default_message = "You already have an active rental for this book"


class AlreadyReturned(DomainStateError):
    code = "already_returned"
    default_message = "Rental has already been returned"


class BookHasActiveRentals(DomainStateError):
    code = "book_has_active_rentals"

    def __init__(self, book_id: int, active_rentals: int):
        self.book_id = book_id
        self.active_rentals = active_rentals
        super().__init__(
            f"Cannot delete book with ID {book_id} because it has {active_rentals} active rental(s)."
        )


class DuplicateIsbn(DomainStateError):
    code = "duplicate_isbn"
    default_message = "ISBN already exists"


class DuplicateEmail(DomainStateError):
    code = "duplicate_email"
    default_message = "Email already registered"


# 422, raised at value object boundaries
class ValidationFailed(LibraryError, ValueError):
    status_code = 422
    code = "invalid"


class CannotExtend(ValidationFailed):
    code = "cannot_extend"
    default_message = "Rental cannot be extended"


class InvalidProgress(ValidationFailed):
    code = "invalid_progress"
    default_message = "Progress must be between 0 and 100"


class InvalidRentalPeriod(ValidationFailed):
    code = "invalid_rental_period"
    default_message = "Due date cannot be before rented date"


class InvalidCopyCount(ValidationFailed):
    code = "invalid_copy_count"
    default_message = "Copy counts must satisfy 0 <= available <= total"


class InvalidExtensionCount(ValidationFailed):
    code = "invalid_extension_count"


class InvalidIsbn(ValidationFailed):
    code = "invalid_isbn"


class OptimisticLockConflict(LibraryError):
    """The record changed since it was read.  Re-read and try again."""

    status_code = 409
    code = "optimistic_lock_conflict"
    retryable = True

    def __init__(self, resource: str, resource_id: int, expected_version: int,
                 actual_version: Optional[int] = None):
        self.resource = resource
        self.resource_id = resource_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        found = f", but found version {actual_version}" if actual_version is not None else ""
        super().__init__(
            f"{resource} with ID {resource_id} has been modified by another process. "
            f"Expected version {expected_version}{found}."
        )
