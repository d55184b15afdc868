from pydantic import BaseModel, ConfigDict, Field, constr, field_validator
from datetime import datetime
from typing import Optional

from app.core.config import DEFAULT_RENTAL_DAYS
from app.domain.entities import Book, Rental

class BookBase(BaseModel):
    title: constr(min_length=1)
    author: constr(min_length=1)
    isbn: Optional[str] = None
    genre: Optional[str] = None
    description: Optional[str] = None
    publication_year: Optional[int] = None

class BookCreate(BookBase):
    total_copies: int = Field(default=1, ge=0)

    @field_validator('total_copies')
    @classmethod
    def ensure_non_negative_copies(cls, v):
        if v < 0:
            raise ValueError('total_copies must be >= 0')
        return v

class BookUpdate(BaseModel):
    version: int = Field(ge=1)
    title: Optional[constr(min_length=1)] = None
    author: Optional[constr(min_length=1)] = None
    isbn: Optional[str] = None
    genre: Optional[str] = None
    description: Optional[str] = None
    publication_year: Optional[int] = None
    total_copies: Optional[int] = Field(default=None, ge=0)

class BookOut(BookBase):
    id: int
    total_copies: int
    available_copies: int
    version: int

    @classmethod
    def from_entity(cls, book: Book) -> "BookOut":
        return cls(**book.to_dict())

class UserBase(BaseModel):
    name: constr(min_length=1)
    email: constr(min_length=5)

class UserCreate(UserBase):
    pass

class UserOut(UserBase):
    id: int
    joined_at: datetime
    model_config = ConfigDict(from_attributes=True)

class RentalCreate(BaseModel):
    book_id: int
    rental_days: int = Field(default=DEFAULT_RENTAL_DAYS, ge=1, le=90)

class RentalExtend(BaseModel):
    days: int = Field(default=DEFAULT_RENTAL_DAYS, ge=1, le=30)

class ProgressUpdate(BaseModel):
    # range is enforced by the ReadingProgress value object
    progress: int

class RentalOut(BaseModel):
    id: int
    user_id: int
    book_id: int
    rented_at: datetime
    due_date: datetime
    returned_at: Optional[datetime] = None
    status: str
    reading_progress: int
    extension_count: int

    @classmethod
    def from_entity(cls, rental: Rental) -> "RentalOut":
        return cls(**rental.to_dict())

class RentalDetailOut(RentalOut):
    is_overdue: bool
    can_extend: bool
    days_remaining: int
    book: Optional[BookOut] = None
