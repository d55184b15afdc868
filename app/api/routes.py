from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from app.core.config import RENT_RETRIES, RETRY_BACKOFF
from app.core.database import get_db
from app.core.exceptions import DuplicateEmail, UserNotFound
from app.models import models
from app.repositories.sqlalchemy_repositories import (
    SqlAlchemyBookRepository, SqlAlchemyRentalRepository, SqlAlchemyUnitOfWork,
)
from app.schemas import schemas
from app.services.book_service import BookService
from app.services.rental_service import RentalService, RentalView, retry_on_conflict

router = APIRouter()

def get_book_service(db: Session = Depends(get_db)) -> BookService:
    return BookService(SqlAlchemyBookRepository(db), SqlAlchemyUnitOfWork(db))

def get_rental_service(db: Session = Depends(get_db)) -> RentalService:
    return RentalService(SqlAlchemyBookRepository(db), SqlAlchemyRentalRepository(db), SqlAlchemyUnitOfWork(db))

def require_user(user_id: int, db: Session) -> models.User:
    user = db.query(models.User).filter(models.User.id == user_id).first()
    if not user:
        raise UserNotFound()
    return user

def rental_detail(view: RentalView) -> schemas.RentalDetailOut:
    return schemas.RentalDetailOut(
        **view.rental.to_dict(),
        is_overdue=view.is_overdue,
        can_extend=view.can_extend,
        days_remaining=view.days_remaining,
        book=schemas.BookOut.from_entity(view.book) if view.book else None,
    )

# -----------------------------
# Books
# -----------------------------
@router.post("/books/", response_model=schemas.BookOut, status_code=201)
def create_book(book_in: schemas.BookCreate, service: BookService = Depends(get_book_service)):
    book = service.create_book(**book_in.model_dump())
    return schemas.BookOut.from_entity(book)

@router.get("/books/", response_model=List[schemas.BookOut])
def list_books(q: Optional[str] = Query(None, description="search title or author"),
               skip: int = Query(0, ge=0), limit: int = Query(20, ge=1, le=100),
               service: BookService = Depends(get_book_service)):
    return [schemas.BookOut.from_entity(b) for b in service.list_books(q=q, skip=skip, limit=limit)]

@router.get("/books/{book_id}", response_model=schemas.BookOut)
def read_book(book_id: int, service: BookService = Depends(get_book_service)):
    return schemas.BookOut.from_entity(service.get_book(book_id))

@router.put("/books/{book_id}", response_model=schemas.BookOut)
def update_book(book_id: int, book_upd: schemas.BookUpdate, service: BookService = Depends(get_book_service)):
    data = book_upd.model_dump(exclude_unset=True)
    version = data.pop("version")
    return schemas.BookOut.from_entity(service.update_book(book_id, version, **data))

@router.delete("/books/{book_id}")
def delete_book(book_id: int, version: int = Query(..., ge=1), service: BookService = Depends(get_book_service)):
    service.delete_book(book_id, version)
    return {"ok": True}

# -----------------------------
# Users
# -----------------------------
@router.post("/users/", response_model=schemas.UserOut, status_code=201)
def create_user(user_in: schemas.UserCreate, db: Session = Depends(get_db)):
    existing = db.query(models.User).filter(models.User.email == user_in.email).first()
    if existing:
        raise DuplicateEmail()
    user = models.User(name=user_in.name.strip(), email=user_in.email.strip())
    db.add(user)
    db.commit()
    db.refresh(user)
    return user

@router.get("/users/", response_model=List[schemas.UserOut])
def list_users(skip: int = 0, limit: int = 50, db: Session = Depends(get_db)):
    return db.query(models.User).order_by(models.User.name).offset(skip).limit(limit).all()

@router.get("/users/{user_id}", response_model=schemas.UserOut)
def read_user(user_id: int, db: Session = Depends(get_db)):
    return require_user(user_id, db)

# -----------------------------
# Rentals
# -----------------------------
@router.post("/rentals/", response_model=schemas.RentalOut, status_code=201)
def rent_book(rental_in: schemas.RentalCreate, user_id: int,
              db: Session = Depends(get_db), service: RentalService = Depends(get_rental_service)):
    require_user(user_id, db)
    rental = retry_on_conflict(
        lambda: service.rent_book(user_id, rental_in.book_id, rental_in.rental_days),
        attempts=RENT_RETRIES, backoff=RETRY_BACKOFF,
    )
    return schemas.RentalOut.from_entity(rental)

@router.get("/rentals/", response_model=List[schemas.RentalDetailOut])
def list_rentals(user_id: int, active_only: bool = False, service: RentalService = Depends(get_rental_service)):
    return [rental_detail(v) for v in service.list_rentals(user_id, active_only=active_only)]

@router.get("/rentals/{rental_id}", response_model=schemas.RentalDetailOut)
def read_rental(rental_id: int, user_id: int, service: RentalService = Depends(get_rental_service)):
    return rental_detail(service.get_rental(rental_id, user_id))

@router.post("/rentals/{rental_id}/return", response_model=schemas.RentalOut)
def return_book(rental_id: int, user_id: int, service: RentalService = Depends(get_rental_service)):
    rental = retry_on_conflict(
        lambda: service.return_book(rental_id, user_id),
        attempts=RENT_RETRIES, backoff=RETRY_BACKOFF,
    )
    return schemas.RentalOut.from_entity(rental)

@router.post("/rentals/{rental_id}/extend", response_model=schemas.RentalOut)
def extend_rental(rental_id: int, user_id: int, body: Optional[schemas.RentalExtend] = None,
                  service: RentalService = Depends(get_rental_service)):
    days = body.days if body else schemas.RentalExtend().days
    return schemas.RentalOut.from_entity(service.extend_rental(rental_id, user_id, days))

@router.patch("/rentals/{rental_id}/progress", response_model=schemas.RentalOut)
def update_progress(rental_id: int, user_id: int, body: schemas.ProgressUpdate,
                    service: RentalService = Depends(get_rental_service)):
    return schemas.RentalOut.from_entity(service.update_reading_progress(rental_id, user_id, body.progress))
