from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from enum import Enum


class MovementType(str, Enum):
    ENTRADA = "entrada"
    SAIDA = "saida"


class MovementReason(str, Enum):
    COMPRA = "compra"
    VENDA = "venda"
    DEVOLUCAO = "devolucao"
    AJUSTE = "ajuste"
    PERDA = "perda"
    ESTORNO = "estorno"
    OUTRO = "outro"


# Movement schemas
class StockMovementCreate(BaseModel):
    book_id: str
    type: MovementType
    quantity: int = Field(..., gt=0, description="Cantidad siempre positiva; el sentido lo da `type`")
    reason: MovementReason
    notes: Optional[str] = Field(None, max_length=500)
    responsible: Optional[str] = Field(None, max_length=255, description="Responsable del movimiento")


class StockMovementOut(BaseModel):
    id: str
    book_id: str
    type: str
    quantity: int
    reason: str
    notes: Optional[str] = None
    responsible: Optional[str] = None
    created_at: datetime

    # Datos derivados
    sale_id: Optional[str] = None
    book_title: Optional[str] = None

    class Config:
        from_attributes = True


class StockMovementList(BaseModel):
    items: List[StockMovementOut]
    total: int
    page: int
    page_size: int
    total_pages: int


class MovementResult(BaseModel):
    book_id: str
    previous_quantity: int
    new_quantity: int
    movement: Optional[StockMovementOut] = None
    warning: Optional[str] = None


# Inventory (conteo físico)
class InventoryAdjustment(BaseModel):
    book_id: str
    counted_quantity: int = Field(..., ge=0, description="Cantidad contada físicamente")
    notes: Optional[str] = Field(None, max_length=500)


class InventoryCountLine(BaseModel):
    book_id: str
    counted_quantity: int = Field(..., ge=0)


class InventoryCountRequest(BaseModel):
    lines: List[InventoryCountLine] = Field(..., min_length=1)
    notes: Optional[str] = Field(None, max_length=500)


class InventoryCountLineResult(BaseModel):
    book_id: str
    title: Optional[str] = None
    previous_quantity: Optional[int] = None
    counted_quantity: int
    difference: int = 0
    adjusted: bool = False
    error: Optional[str] = None


class InventoryCountResult(BaseModel):
    total_products: int
    acrescimos: int
    reducoes: int
    diferenca_total: int
    lines: List[InventoryCountLineResult]
