from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..database import get_db_session
from ..middleware import get_current_user, require_staff
from ..models import BookStatus, User
from ..responses import ApiResponse, ok, paged
from ..schemas.library import (
    BookAvailability,
    BookCreate,
    BookDetail,
    BookOut,
    BookUpdate,
    PopularBook,
)
from ..services import books as book_service

router = APIRouter(prefix="/books", tags=["Library"])


def _listing(db: Session, page: int, limit: int, **filters):
    return paged(book_service.list_books(db, page=page, limit=limit, **filters), BookOut)


@router.post("", response_model=ApiResponse[BookOut], status_code=status.HTTP_201_CREATED)
def create_book(
    payload: BookCreate,
    db: Session = Depends(get_db_session),
    _: User = Depends(require_staff),
):
    book = book_service.create_book(db, data=payload)
    return ok(BookOut.model_validate(book), "Book created successfully")


@router.get("", response_model=ApiResponse[list[BookOut]])
def list_books(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    search: str | None = None,
    isbn: str | None = None,
    author: str | None = None,
    category: str | None = None,
    status: BookStatus | None = None,
    available: bool | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    db: Session = Depends(get_db_session),
    _: User = Depends(get_current_user),
):
    return _listing(
        db,
        page,
        limit,
        search=search,
        isbn=isbn,
        author=author,
        category=category,
        status=status,
        available=available,
        sort_by=sort_by,
        sort_order=sort_order,
    )


@router.get("/search", response_model=ApiResponse[list[BookOut]])
def search_books(
    q: str = Query(min_length=1),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db_session),
    _: User = Depends(get_current_user),
):
    return _listing(db, page, limit, search=q)


@router.get("/available", response_model=ApiResponse[list[BookOut]])
def available_books(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db_session),
    _: User = Depends(get_current_user),
):
    return _listing(db, page, limit, available=True)


@router.get("/categories", response_model=ApiResponse[list[str]])
def list_categories(db: Session = Depends(get_db_session), _: User = Depends(get_current_user)):
    return ok(book_service.list_categories(db))


@router.get("/category/{category}", response_model=ApiResponse[list[BookOut]])
def books_by_category(
    category: str,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db_session),
    _: User = Depends(get_current_user),
):
    return _listing(db, page, limit, category=category)


@router.get("/author/{author}", response_model=ApiResponse[list[BookOut]])
def books_by_author(
    author: str,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db_session),
    _: User = Depends(get_current_user),
):
    return _listing(db, page, limit, author=author)


@router.get("/stats", response_model=ApiResponse[dict])
def books_statistics(db: Session = Depends(get_db_session), _: User = Depends(require_staff)):
    return ok(book_service.books_statistics(db))


@router.get("/popular", response_model=ApiResponse[list[PopularBook]])
def popular_books(
    limit: int = Query(default=10, ge=1, le=50),
    db: Session = Depends(get_db_session),
    _: User = Depends(get_current_user),
):
    return ok([PopularBook.model_validate(item) for item in book_service.popular_books(db, limit)])


@router.get("/recent", response_model=ApiResponse[list[BookOut]])
def recent_books(
    limit: int = Query(default=10, ge=1, le=50),
    db: Session = Depends(get_db_session),
    _: User = Depends(get_current_user),
):
    return ok([BookOut.model_validate(book) for book in book_service.recent_books(db, limit)])


@router.get("/isbn/{isbn}", response_model=ApiResponse[BookOut])
def get_book_by_isbn(isbn: str, db: Session = Depends(get_db_session), _: User = Depends(get_current_user)):
    return ok(BookOut.model_validate(book_service.get_book_by_isbn(db, isbn)))


@router.get("/{book_id}", response_model=ApiResponse[BookDetail])
def get_book(book_id: int, db: Session = Depends(get_db_session), _: User = Depends(get_current_user)):
    return ok(BookDetail.model_validate(book_service.book_detail(db, book_id)))


@router.get("/{book_id}/availability", response_model=ApiResponse[BookAvailability])
def check_availability(book_id: int, db: Session = Depends(get_db_session), _: User = Depends(get_current_user)):
    return ok(book_service.check_availability(db, book_id))


@router.put("/{book_id}", response_model=ApiResponse[BookOut])
def update_book(
    book_id: int,
    payload: BookUpdate,
    db: Session = Depends(get_db_session),
    _: User = Depends(require_staff),
):
    book = book_service.update_book(db, book_id=book_id, data=payload)
    return ok(BookOut.model_validate(book), "Book updated successfully")


@router.delete("/{book_id}", response_model=ApiResponse[None])
def delete_book(book_id: int, db: Session = Depends(get_db_session), _: User = Depends(require_staff)):
    book_service.delete_book(db, book_id=book_id)
    return ok(message="Book deleted successfully")
