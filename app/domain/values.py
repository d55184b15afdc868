"""Immutable value objects shared by books and rentals.

"Mutating" a value object returns a new instance; nothing here edits in
place.  Invariants are checked in ``__post_init__`` so an invalid value can
never be constructed.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from app.core.exceptions import (
    InvalidCopyCount, InvalidIsbn, InvalidProgress, InvalidRentalPeriod,
)


def utcnow() -> datetime:
    """Naive UTC timestamp, the form SQLite hands back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class RentalStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"

    @property
    def is_active(self) -> bool:
        return self is RentalStatus.ACTIVE

    @property
    def is_completed(self) -> bool:
        return self is RentalStatus.COMPLETED


@dataclass(frozen=True)
class RentalPeriod:
    rented_at: datetime
    due_date: datetime
    returned_at: Optional[datetime] = None

    def __post_init__(self):
        if self.due_date < self.rented_at:
            raise InvalidRentalPeriod()

    @classmethod
    def create_new(cls, days: int = 14, now: Optional[datetime] = None) -> "RentalPeriod":
        now = now or utcnow()
        return cls(rented_at=now, due_date=now + timedelta(days=days))

    def extend(self, days: int) -> "RentalPeriod":
        return replace(self, due_date=self.due_date + timedelta(days=days))

    def mark_returned(self, at: datetime) -> "RentalPeriod":
        return replace(self, returned_at=at)

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        return self.returned_at is None and self.due_date < (now or utcnow())

    def days_remaining(self, now: Optional[datetime] = None) -> int:
        if self.returned_at is not None:
            return 0
        return max(0, (self.due_date - (now or utcnow())).days)


@dataclass(frozen=True)
class ReadingProgress:
    value: int = 0

    def __post_init__(self):
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise InvalidProgress()
        if self.value < 0 or self.value > 100:
            raise InvalidProgress()

    @property
    def is_complete(self) -> bool:
        return self.value == 100

    def increment(self, amount: int) -> "ReadingProgress":
        return ReadingProgress(min(100, self.value + amount))


_ISBN_SEPARATORS = re.compile(r"[\s-]+")


@dataclass(frozen=True)
class ISBN:
    """ISBN-10 or ISBN-13; hyphens and spaces are accepted and dropped."""

    value: str

    def __post_init__(self):
        digits = _ISBN_SEPARATORS.sub("", self.value or "")
        if not digits.isdigit() or len(digits) not in (10, 13):
            raise InvalidIsbn(f"Invalid ISBN: {self.value}")
        object.__setattr__(self, "value", digits)

    def __str__(self):
        return self.value


def check_copy_counts(total: int, available: int) -> None:
    if total < 0 or available < 0 or available > total:
        raise InvalidCopyCount(
            f"Invalid copy counts: available={available}, total={total}"
        )


def resize_copies(total: int, available: int, new_total: int) -> int:
    """Return the available count after changing the total to ``new_total``.

    Rented copies stay rented; if fewer copies than that remain the
    availability is clamped to 0.
    """
    if new_total < 0:
        raise InvalidCopyCount("total_copies must be >= 0")
    rented = total - available
    return max(0, new_total - rented)
