"""
Tests del control de stock

- Movimientos de entrada/salida con fila de auditoría
- Rechazo de salidas mayores al stock sin efectos secundarios
- Ajustes y conteo físico de inventario
- Ajustes best-effort usados por ventas y estornos
"""

import pytest

from app.modules.inventory.schemas import (
    InventoryCountLine, MovementReason, MovementType, StockMovementCreate
)
from app.modules.inventory.service import StockService, extract_sale_id, reversal_note, sale_note


class FailingMovementStore:
    """Envoltorio que deja fallar la inserción de movimientos"""

    def __init__(self, store):
        self.store = store

    def __getattr__(self, name):
        return getattr(self.store, name)

    def insert(self, table, values):
        if table == "stock_movements":
            raise RuntimeError("tabla bloqueada")
        return self.store.insert(table, values)


def _movement(book_id="2", movement_type=MovementType.SAIDA, quantity=1, reason=MovementReason.VENDA):
    return StockMovementCreate(book_id=book_id, type=movement_type, quantity=quantity, reason=reason)


class TestStockMovements:
    """Tests de creación de movimientos"""

    def test_entrada_increases_quantity(self, memory_store):
        response = StockService(memory_store).create_movement(
            _movement(movement_type=MovementType.ENTRADA, quantity=5, reason=MovementReason.COMPRA)
        )
        assert response.ok
        assert response.data["previous_quantity"] == 15
        assert response.data["new_quantity"] == 20
        assert response.data["movement"]["reason"] == "compra"
        assert memory_store.get("books", "2")["quantity"] == 20

    def test_saida_decreases_quantity(self, memory_store):
        response = StockService(memory_store).create_movement(_movement(quantity=4))
        assert response.data["new_quantity"] == 11
        assert memory_store.count("stock_movements", filters={"book_id": "2"}) == 1

    def test_saida_over_stock_is_rejected_without_writes(self, memory_store):
        """Test Q=3 y salida de 5: error, cantidad intacta y sin movimiento"""
        memory_store.update("books", "2", {"quantity": 3})
        response = StockService(memory_store).create_movement(_movement(quantity=5))

        assert not response.ok
        assert response.error == (
            "Stock insuficiente para 'Harry Potter e a Pedra Filosofal'. Disponible: 3, Solicitado: 5"
        )
        assert memory_store.get("books", "2")["quantity"] == 3
        assert memory_store.count("stock_movements") == 0

    def test_missing_book(self, memory_store):
        response = StockService(memory_store).create_movement(_movement(book_id="99"))
        assert response.error == "Libro con ID 99 no encontrado"

    def test_movement_failure_keeps_quantity_and_warns(self, memory_store):
        """Test la cantidad no se revierte si la auditoría falla"""
        service = StockService(FailingMovementStore(memory_store))
        response = service.create_movement(_movement(quantity=2))
        assert response.ok
        assert response.data["movement"] is None
        assert response.data["warning"]
        assert memory_store.get("books", "2")["quantity"] == 13

    def test_quantity_must_be_positive(self):
        with pytest.raises(ValueError):
            _movement(quantity=0)

    def test_list_movements_derives_sale_and_title(self, memory_store):
        service = StockService(memory_store)
        service.apply_best_effort("1", MovementType.SAIDA, 2, MovementReason.VENDA, notes=sale_note("abc-123"))
        response = service.list_movements(book_id="1")
        movement = response.data["items"][0]
        assert movement["sale_id"] == "abc-123"
        assert movement["book_title"] == "O Senhor dos Anéis"


class TestBestEffortAdjustments:
    """Tests del ajuste best-effort"""

    def test_saida_clamps_at_zero(self, memory_store):
        service = StockService(memory_store)
        assert service.apply_best_effort("2", MovementType.SAIDA, 40, MovementReason.VENDA, notes=sale_note("s1"))
        assert memory_store.get("books", "2")["quantity"] == 0
        assert memory_store.count("stock_movements") == 1

    def test_missing_book_reports_failure_but_records_movement(self, memory_store):
        service = StockService(memory_store)
        assert not service.apply_best_effort("99", MovementType.ENTRADA, 1, MovementReason.ESTORNO)
        assert memory_store.count("stock_movements") == 1

    def test_without_store(self):
        assert not StockService(None).apply_best_effort("1", MovementType.SAIDA, 1, MovementReason.VENDA)


class TestInventoryAdjustments:
    """Tests de ajustes y conteo físico"""

    def test_adjust_down(self, memory_store):
        response = StockService(memory_store).adjust_inventory("3", 40, responsible="Gerente")
        assert response.data["new_quantity"] == 40
        movement = response.data["movement"]
        assert movement["type"] == "saida"
        assert movement["quantity"] == 2
        assert movement["reason"] == "ajuste"
        assert movement["notes"] == "Ajuste de inventario: 42 → 40"

    def test_adjust_without_difference(self, memory_store):
        response = StockService(memory_store).adjust_inventory("3", 42)
        assert not response.ok
        assert memory_store.count("stock_movements") == 0

    def test_inventory_count(self, memory_store):
        lines = [
            InventoryCountLine(book_id="1", counted_quantity=25),
            InventoryCountLine(book_id="2", counted_quantity=10),
            InventoryCountLine(book_id="3", counted_quantity=42),
            InventoryCountLine(book_id="99", counted_quantity=1),
        ]
        response = StockService(memory_store).run_inventory_count(lines, responsible="Gerente")
        result = response.data

        assert result["total_products"] == 3
        assert result["acrescimos"] == 1
        assert result["reducoes"] == 1
        assert result["diferenca_total"] == -3
        by_book = {line["book_id"]: line for line in result["lines"]}
        assert by_book["1"]["adjusted"]
        assert by_book["2"]["adjusted"]
        assert not by_book["3"]["adjusted"]
        assert by_book["99"]["error"] == "Libro con ID 99 no encontrado"
        assert memory_store.get("books", "1")["quantity"] == 25
        assert memory_store.get("books", "2")["quantity"] == 10
        assert memory_store.count("stock_movements") == 2


class TestNotes:
    def test_extract_sale_id(self):
        assert extract_sale_id(sale_note("42")) == "42"
        assert extract_sale_id(reversal_note("42")) == "42"
        assert extract_sale_id("Compra do fornecedor") is None
        assert extract_sale_id(None) is None


class TestStockAPI:
    """Tests de los endpoints de stock"""

    def test_create_movement_records_session_user(self, client, auth_headers, memory_store):
        response = client.post("/stock/movements", headers=auth_headers, json={
            "book_id": "1",
            "type": "entrada",
            "quantity": 3,
            "reason": "compra",
        })
        assert response.status_code == 201
        assert response.json()["new_quantity"] == 26
        assert response.json()["movement"]["responsible"] == "Vendedor Teste"

    def test_rejected_movement(self, client):
        response = client.post("/stock/movements", json={
            "book_id": "2",
            "type": "saida",
            "quantity": 100,
            "reason": "perda",
        })
        assert response.status_code == 400

    def test_list_movements(self, client):
        client.post("/stock/movements", json={"book_id": "3", "type": "saida", "quantity": 1, "reason": "perda"})
        response = client.get("/stock/movements", params={"type": "saida"})
        assert response.status_code == 200
        assert response.json()["total"] == 1
        assert response.json()["items"][0]["book_title"] == "Dom Casmurro"

    def test_inventory_count_endpoint(self, client):
        response = client.post("/stock/inventory-count", json={
            "lines": [{"book_id": "1", "counted_quantity": 20}],
        })
        assert response.status_code == 200
        assert response.json()["reducoes"] == 1
