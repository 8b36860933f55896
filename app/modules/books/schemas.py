from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from typing import Optional, List
from datetime import datetime

from app.modules.inventory.schemas import MovementReason


class BookBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255, description="Título")
    author: Optional[str] = Field(None, max_length=255)
    isbn: Optional[str] = Field(None, max_length=20, description="ISBN-10 o ISBN-13")
    publisher: Optional[str] = Field(None, max_length=255, description="Editorial")
    category: Optional[str] = Field(None, max_length=100)
    subcategory: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    purchase_price: Decimal = Field(Decimal("0"), ge=0)
    selling_price: Decimal = Field(..., ge=0)
    minimum_stock: Optional[int] = Field(None, ge=0, description="Umbral de stock bajo (por defecto 5)")
    supplier_id: Optional[str] = None

    @field_validator('isbn')
    @classmethod
    def validate_isbn(cls, v):
        if v is None or v.strip() == "":
            return None
        cleaned = v.replace("-", "").replace(" ", "")
        if len(cleaned) not in (10, 13) or not cleaned[:-1].isdigit():
            raise ValueError('ISBN debe tener 10 o 13 dígitos')
        return cleaned


class BookCreate(BookBase):
    quantity: int = Field(0, ge=0, description="Cantidad inicial en stock")


class BookUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    author: Optional[str] = Field(None, max_length=255)
    isbn: Optional[str] = Field(None, max_length=20)
    publisher: Optional[str] = Field(None, max_length=255)
    category: Optional[str] = Field(None, max_length=100)
    subcategory: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    purchase_price: Optional[Decimal] = Field(None, ge=0)
    selling_price: Optional[Decimal] = Field(None, ge=0)
    minimum_stock: Optional[int] = Field(None, ge=0)
    supplier_id: Optional[str] = None


class StockDelta(BaseModel):
    delta: int = Field(..., description="Cambio de cantidad (positivo entra, negativo sale)")
    reason: MovementReason = MovementReason.AJUSTE
    notes: Optional[str] = Field(None, max_length=500)


class BookOut(BookBase):
    id: str
    quantity: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BookList(BaseModel):
    items: List[BookOut]
    total: int
    page: int
    page_size: int
    total_pages: int
