from fastapi import APIRouter, Query, status
from typing import List, Optional

from app.common.entity_service import Pagination
from app.common.responses import unwrap
from app.dependencies.storeDependencies import session_dependency, store_dependency
from app.modules.books.schemas import BookCreate, BookList, BookOut, BookUpdate, StockDelta
from app.modules.books.service import BookService
from app.modules.inventory.schemas import MovementResult

books_router = APIRouter(prefix="/books", tags=["Books"])


@books_router.get("/", response_model=BookList)
def list_books(
    store: store_dependency,
    category: Optional[str] = Query(None),
    publisher: Optional[str] = Query(None),
    search: Optional[str] = Query(None, description="Título, autor o ISBN"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    order_by: str = Query("title"),
    descending: bool = Query(False),
):
    """Listar libros con filtros y paginación."""
    service = BookService(store)
    pagination = Pagination(page=page, page_size=page_size, order_by=order_by, descending=descending)
    if search:
        return unwrap(service.search_books(search, pagination))
    return unwrap(service.get_all({"category": category, "publisher": publisher}, pagination))


@books_router.get("/low-stock", response_model=List[BookOut])
def low_stock_books(store: store_dependency):
    """Libros en o por debajo del stock mínimo."""
    return unwrap(BookService(store).get_low_stock_books())


@books_router.get("/categories", response_model=List[str])
def list_categories(store: store_dependency):
    return unwrap(BookService(store).get_categories())


@books_router.get("/available", response_model=BookList)
def available_books(
    store: store_dependency,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
):
    """Libros con stock para el punto de venta."""
    pagination = Pagination(page=page, page_size=page_size, order_by="title", descending=False)
    return unwrap(BookService(store).get_available_books(pagination))


@books_router.get("/{book_id}", response_model=BookOut)
def get_book(book_id: str, store: store_dependency):
    return unwrap(BookService(store).get_by_id(book_id))


@books_router.post("/", response_model=BookOut, status_code=status.HTTP_201_CREATED)
def create_book(book: BookCreate, store: store_dependency):
    """Crear nuevo libro"""
    return unwrap(BookService(store).create(book.model_dump()))


@books_router.patch("/{book_id}", response_model=BookOut)
def update_book(book_id: str, book: BookUpdate, store: store_dependency):
    """Actualizar libro"""
    return unwrap(BookService(store).update(book_id, book.model_dump(exclude_unset=True)))


@books_router.patch("/{book_id}/stock", response_model=MovementResult)
def update_book_stock(book_id: str, payload: StockDelta, store: store_dependency, context: session_dependency):
    """Aplicar un delta de stock registrando el movimiento correspondiente."""
    responsible = None
    if context.session is not None:
        responsible = context.session.name or context.session.email
    return unwrap(BookService(store).update_stock(
        book_id, payload.delta, payload.reason, payload.notes, responsible
    ))


@books_router.delete("/{book_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_book(book_id: str, store: store_dependency):
    unwrap(BookService(store).delete(book_id))
