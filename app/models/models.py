from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.domain.values import RentalStatus, utcnow


class Book(Base):
    __tablename__ = "books"
    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False, index=True)
    author = Column(String, nullable=False, index=True)
    isbn = Column(String, unique=True, index=True, nullable=True)
    genre = Column(String, nullable=True, index=True)
    description = Column(Text, nullable=True)
    publication_year = Column(Integer, nullable=True)
    total_copies = Column(Integer, nullable=False, default=1)
    available_copies = Column(Integer, nullable=False, default=1)
    # optimistic lock; every conditional write bumps it
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)
    deleted_at = Column(DateTime, nullable=True, index=True)
    rentals = relationship("Rental", back_populates="book")

Index('ix_books_title_author', Book.title, Book.author)
Index('ix_books_available_title', Book.available_copies, Book.title)

class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    joined_at = Column(DateTime, default=utcnow)
    rentals = relationship("Rental", back_populates="user")

class Rental(Base):
    __tablename__ = "rentals"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False, index=True)
    rented_at = Column(DateTime, nullable=False)
    due_date = Column(DateTime, nullable=False, index=True)
    returned_at = Column(DateTime, nullable=True)
    status = Column(String, nullable=False, default=RentalStatus.ACTIVE.value)
    reading_progress = Column(Integer, nullable=False, default=0)
    extension_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    user = relationship("User", back_populates="rentals")
    book = relationship("Book", back_populates="rentals")

Index('ix_rentals_user_status', Rental.user_id, Rental.status)
Index('ix_rentals_book_status', Rental.book_id, Rental.status)
# at most one active rental per (user, book)
Index(
    'uq_rentals_active_user_book', Rental.user_id, Rental.book_id, unique=True,
    sqlite_where=Rental.status == RentalStatus.ACTIVE.value,
    postgresql_where=Rental.status == RentalStatus.ACTIVE.value,
)
