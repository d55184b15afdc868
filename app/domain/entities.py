"""Domain entities for the catalog and rentals.

Book and Rental are separate aggregates linked only by ``book_id``.  Both
are frozen dataclasses: the workflow builds a new instance for every state
change and hands it to the repository to persist.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

from app.core.config import DEFAULT_RENTAL_DAYS
from app.core.exceptions import AlreadyReturned, CannotExtend, InvalidExtensionCount
from app.domain.values import (
    ISBN, ReadingProgress, RentalPeriod, RentalStatus, check_copy_counts, utcnow,
)

MAX_EXTENSIONS = 5


@dataclass(frozen=True)
class Book:
    id: Optional[int]
    title: str
    author: str
    total_copies: int
    available_copies: int
    version: int = 1
    isbn: Optional[ISBN] = None
    genre: Optional[str] = None
    description: Optional[str] = None
    publication_year: Optional[int] = None

    def __post_init__(self):
        check_copy_counts(self.total_copies, self.available_copies)

    @classmethod
    def new(cls, title: str, author: str, total_copies: int = 1, **fields) -> "Book":
        return cls(id=None, title=title, author=author, total_copies=total_copies,
                   available_copies=total_copies, version=1, **fields)

    @property
    def is_available(self) -> bool:
        return self.available_copies > 0

    @property
    def rented_copies(self) -> int:
        return self.total_copies - self.available_copies

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "isbn": str(self.isbn) if self.isbn else None,
            "genre": self.genre,
            "description": self.description,
            "publication_year": self.publication_year,
            "total_copies": self.total_copies,
            "available_copies": self.available_copies,
            "version": self.version,
        }


@dataclass(frozen=True)
class Rental:
    id: Optional[int]
    user_id: int
    book_id: int
    period: RentalPeriod
    status: RentalStatus = RentalStatus.ACTIVE
    progress: ReadingProgress = ReadingProgress(0)
    extension_count: int = 0

    def __post_init__(self):
        if not 0 <= self.extension_count <= MAX_EXTENSIONS:
            raise InvalidExtensionCount(f"extension_count must be between 0 and {MAX_EXTENSIONS}")

    @classmethod
    def start(cls, user_id: int, book_id: int, days: int = DEFAULT_RENTAL_DAYS,
              now: Optional[datetime] = None) -> "Rental":
        return cls(id=None, user_id=user_id, book_id=book_id,
                   period=RentalPeriod.create_new(days, now))

    @property
    def is_active(self) -> bool:
        return self.status.is_active

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        return self.period.is_overdue(now)

    def extension_blockers(self, now: Optional[datetime] = None) -> list:
        blockers = []
        if not self.status.is_active:
            blockers.append(f"status is {self.status.value}")
        if self.extension_count >= MAX_EXTENSIONS:
            blockers.append(f"extension limit reached ({self.extension_count}/{MAX_EXTENSIONS})")
        if self.period.is_overdue(now):
            blockers.append("rental is overdue")
        return blockers

    def can_extend(self, now: Optional[datetime] = None) -> bool:
        return not self.extension_blockers(now)

    def extend(self, days: int = DEFAULT_RENTAL_DAYS, now: Optional[datetime] = None) -> "Rental":
        blockers = self.extension_blockers(now)
        if blockers:
            raise CannotExtend("Cannot extend rental: " + ", ".join(blockers))
        return replace(self, period=self.period.extend(days),
                       extension_count=self.extension_count + 1)

    def complete(self, now: Optional[datetime] = None) -> "Rental":
        if self.status.is_completed:
            raise AlreadyReturned()
        return replace(self, period=self.period.mark_returned(now or utcnow()),
                       status=RentalStatus.COMPLETED, progress=ReadingProgress(100))

    def with_progress(self, progress: ReadingProgress) -> "Rental":
        if self.status.is_completed:
            raise AlreadyReturned("Cannot update progress of a returned rental")
        return replace(self, progress=progress)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "book_id": self.book_id,
            "rented_at": self.period.rented_at,
            "due_date": self.period.due_date,
            "returned_at": self.period.returned_at,
            "status": self.status.value,
            "reading_progress": self.progress.value,
            "extension_count": self.extension_count,
        }
