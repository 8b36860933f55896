"""
Tests para el módulo de Libros

- Búsqueda por título, autor o ISBN
- Rechazo de stock negativo y movimiento registrado por cada delta
- Libros con stock bajo y categorías
- Endpoints CRUD con validación de ISBN
"""

import pytest
from decimal import Decimal

from app.common.entity_service import Pagination
from app.modules.books.schemas import BookCreate
from app.modules.books.service import BookService, minimum_stock
from app.modules.inventory.schemas import MovementReason


@pytest.fixture
def sample_book_data():
    return {
        "title": "Memórias Póstumas de Brás Cubas",
        "author": "Machado de Assis",
        "isbn": "978-85-359-0277-8",
        "publisher": "Companhia das Letras",
        "category": "Clássico",
        "purchase_price": "14.00",
        "selling_price": "32.90",
        "quantity": 6,
    }


class TestBookService:
    """Tests del servicio de libros"""

    def test_search_by_author(self, memory_store):
        response = BookService(memory_store).search_books("tolkien")
        assert response.ok
        assert [book["id"] for book in response.data["items"]] == ["1"]

    def test_search_by_isbn(self, memory_store):
        response = BookService(memory_store).search_books("9788535910663")
        assert response.data["total"] == 1
        assert response.data["items"][0]["title"] == "Dom Casmurro"

    def test_update_stock_applies_delta(self, memory_store):
        response = BookService(memory_store).update_stock("2", -5)
        assert response.ok
        assert response.data["new_quantity"] == 10
        assert memory_store.get("books", "2")["quantity"] == 10

    def test_update_stock_records_movement(self, memory_store):
        """Test todo cambio de cantidad deja una fila de movimiento"""
        BookService(memory_store).update_stock("2", 4, MovementReason.COMPRA, notes="Reposição", responsible="Ana")
        movements = memory_store.select("stock_movements", filters={"book_id": "2"})
        assert len(movements) == 1
        assert movements[0]["type"] == "entrada"
        assert movements[0]["quantity"] == 4
        assert movements[0]["reason"] == "compra"
        assert movements[0]["responsible"] == "Ana"

    def test_update_stock_zero_delta(self, memory_store):
        response = BookService(memory_store).update_stock("2", 0)
        assert response.error == "El delta de stock no puede ser cero"
        assert memory_store.select("stock_movements") == []

    def test_update_stock_rejects_negative_result(self, memory_store):
        """Test el stock nunca queda negativo"""
        response = BookService(memory_store).update_stock("2", -16)
        assert not response.ok
        assert response.error == (
            "Stock insuficiente para 'Harry Potter e a Pedra Filosofal'. Disponible: 15, Solicitado: 16"
        )
        assert memory_store.get("books", "2")["quantity"] == 15
        assert memory_store.select("stock_movements") == []

    def test_update_stock_missing_book(self, memory_store):
        response = BookService(memory_store).update_stock("99", 1)
        assert response.error == "Libro con ID 99 no encontrado"

    def test_low_stock_uses_book_threshold(self, memory_store):
        memory_store.update("books", "2", {"quantity": 8})
        response = BookService(memory_store).get_low_stock_books()
        assert [book["id"] for book in response.data] == ["2"]

    def test_minimum_stock_default(self):
        assert minimum_stock({"quantity": 3}) == 5
        assert minimum_stock({"minimum_stock": 0}) == 0

    def test_categories_are_distinct_and_sorted(self, memory_store):
        response = BookService(memory_store).get_categories()
        assert response.data == ["Clássico", "Fantasia"]

    def test_available_books_excludes_out_of_stock(self, memory_store):
        memory_store.update("books", "3", {"quantity": 0})
        response = BookService(memory_store).get_available_books()
        assert sorted(book["id"] for book in response.data["items"]) == ["1", "2"]

    def test_pagination_metadata(self, memory_store):
        pagination = Pagination(page=2, page_size=2, order_by="title", descending=False)
        response = BookService(memory_store).get_all(pagination=pagination)
        assert response.data["total"] == 3
        assert response.data["total_pages"] == 2
        assert len(response.data["items"]) == 1

    def test_store_unavailable(self):
        response = BookService(None).get_all()
        assert not response.ok
        assert response.error == "Almacén de datos no disponible"

    def test_same_behaviour_on_sql_store(self, sql_store, sample_book_data):
        """Test el servicio funciona igual sobre el backend SQL"""
        service = BookService(sql_store)
        created = service.create(BookCreate(**sample_book_data).model_dump())
        assert created.ok
        assert created.data["isbn"] == "9788535902778"
        assert service.update_stock(created.data["id"], -7).error.startswith("Stock insuficiente")
        assert service.update_stock(created.data["id"], -6).data["new_quantity"] == 0
        movements = sql_store.select("stock_movements", filters={"book_id": created.data["id"]})
        assert [(m["type"], m["quantity"]) for m in movements] == [("saida", 6)]


class TestBookSchemas:
    """Tests de validación de libros"""

    def test_isbn_is_normalized(self, sample_book_data):
        book = BookCreate(**sample_book_data)
        assert book.isbn == "9788535902778"
        assert book.selling_price == Decimal("32.90")

    def test_blank_isbn_becomes_none(self, sample_book_data):
        sample_book_data["isbn"] = "  "
        assert BookCreate(**sample_book_data).isbn is None

    def test_invalid_isbn_length(self, sample_book_data):
        sample_book_data["isbn"] = "12345"
        with pytest.raises(ValueError):
            BookCreate(**sample_book_data)


class TestBooksAPI:
    """Tests de los endpoints de libros"""

    def test_list_books(self, client):
        response = client.get("/books/", params={"category": "Fantasia"})
        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 2
        assert [book["title"] for book in body["items"]] == [
            "Harry Potter e a Pedra Filosofal",
            "O Senhor dos Anéis",
        ]

    def test_search_books(self, client):
        response = client.get("/books/", params={"search": "POTTER"})
        assert response.json()["items"][0]["id"] == "2"

    def test_create_book(self, client, sample_book_data):
        response = client.post("/books/", json=sample_book_data)
        assert response.status_code == 201
        body = response.json()
        assert body["id"]
        assert body["quantity"] == 6

    def test_create_book_invalid_isbn(self, client, sample_book_data):
        sample_book_data["isbn"] = "ABC"
        response = client.post("/books/", json=sample_book_data)
        assert response.status_code == 422

    def test_get_missing_book(self, client):
        response = client.get("/books/99")
        assert response.status_code == 404
        assert response.json()["detail"] == "Libro con ID 99 no encontrado"

    def test_stock_patch_rejected(self, client, memory_store):
        response = client.patch("/books/2/stock", json={"delta": -100})
        assert response.status_code == 400
        assert response.json()["detail"].startswith("Stock insuficiente")
        assert memory_store.select("stock_movements") == []

    def test_stock_patch_writes_movement(self, client, memory_store, auth_headers):
        response = client.patch("/books/2/stock", json={"delta": -5}, headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["new_quantity"] == 10
        assert memory_store.get("books", "2")["quantity"] == 10

        movements = memory_store.select("stock_movements", filters={"book_id": "2"})
        assert len(movements) == 1
        assert movements[0]["type"] == "saida"
        assert movements[0]["quantity"] == 5
        assert movements[0]["reason"] == "ajuste"
        assert movements[0]["responsible"] == "Vendedor Teste"

    def test_update_and_delete(self, client, memory_store):
        response = client.patch("/books/3", json={"selling_price": "34.90"})
        assert response.status_code == 200
        assert memory_store.get("books", "3")["selling_price"] == Decimal("34.90")

        assert client.delete("/books/3").status_code == 204
        assert client.get("/books/3").status_code == 404

    def test_categories(self, client):
        assert client.get("/books/categories").json() == ["Clássico", "Fantasia"]
