"""
Esquemas Pydantic para el módulo de Ventas (punto de venta)
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from decimal import Decimal, ROUND_DOWN
from typing import Optional, List
from datetime import datetime
from enum import Enum


CENT = Decimal("0.01")
TOTAL_TOLERANCE = Decimal("0.005")


class PaymentMethod(str, Enum):
    CASH = "cash"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    PIX = "pix"
    TRANSFER = "transfer"


class PaymentStatus(str, Enum):
    PAID = "paid"
    PENDING = "pending"
    CANCELED = "canceled"


# forma_pagamento de la transacción financiera vinculada
PAYMENT_FORM_BY_METHOD = {
    PaymentMethod.CASH.value: "dinheiro",
    PaymentMethod.CREDIT_CARD.value: "credito",
    PaymentMethod.DEBIT_CARD.value: "debito",
    PaymentMethod.PIX.value: "pix",
    PaymentMethod.TRANSFER.value: "transferencia",
}


# ===== CARRITO =====

class SaleLineCreate(BaseModel):
    """Línea del carrito"""
    book_id: str = Field(..., description="ID del libro")
    quantity: int = Field(..., gt=0, description="Cantidad")
    unit_price: Optional[Decimal] = Field(None, ge=0, description="Precio unitario (opcional, se toma del libro)")
    discount: Decimal = Field(Decimal("0"), ge=0, description="Descuento de la línea en valor")

    @model_validator(mode='after')
    def validate_discount(self):
        if self.unit_price is not None and self.discount > self.unit_price * self.quantity:
            raise ValueError('El descuento no puede superar el valor de la línea')
        return self

    @property
    def gross(self) -> Decimal:
        return (self.unit_price or Decimal("0")) * self.quantity

    @property
    def line_total(self) -> Decimal:
        return (self.gross - self.discount).quantize(CENT)


class SaleCreate(BaseModel):
    """Esquema para finalizar una venta"""
    customer_id: Optional[str] = Field(None, description="ID del cliente (opcional)")
    user_id: Optional[str] = Field(None, description="Operador según el cliente; prevalece la sesión")
    items: List[SaleLineCreate] = Field(..., min_length=1, description="Líneas del carrito")
    payment_method: PaymentMethod
    notes: Optional[str] = Field(None, max_length=500)
    general_discount: Decimal = Field(Decimal("0"), ge=0, description="Descuento general a repartir entre líneas")
    total: Optional[Decimal] = Field(None, description="Total calculado por el cliente, se verifica")

    @field_validator('items')
    @classmethod
    def validate_items(cls, v: List[SaleLineCreate]) -> List[SaleLineCreate]:
        if not v:
            raise ValueError('Debe incluir al menos un ítem')
        return v


def compute_sale_total(lines: List[SaleLineCreate]) -> Decimal:
    """Σ(precio × cantidad − descuento) de todas las líneas."""
    return sum((line.line_total for line in lines), Decimal("0")).quantize(CENT)


def distribute_general_discount(lines: List[SaleLineCreate], amount: Decimal) -> List[SaleLineCreate]:
    """
    Repartir un descuento general entre las líneas, proporcional al valor bruto.

    Cada parte se trunca a centavos y el resto va a la última línea. Con una
    sola línea el descuento se limita al valor de la línea.
    """
    amount = Decimal(str(amount)).quantize(CENT)
    if amount <= 0 or not lines:
        return list(lines)

    if len(lines) == 1:
        line = lines[0]
        extra = min(amount, line.gross - line.discount)
        return [line.model_copy(update={"discount": line.discount + extra})]

    gross_total = sum((line.gross for line in lines), Decimal("0"))
    if gross_total <= 0:
        return list(lines)

    result = []
    assigned = Decimal("0")
    for index, line in enumerate(lines):
        if index == len(lines) - 1:
            share = amount - assigned
        else:
            share = (amount * line.gross / gross_total).quantize(CENT, rounding=ROUND_DOWN)
            assigned += share
        result.append(line.model_copy(update={"discount": line.discount + share}))
    return result


# ===== SALIDA =====

class SaleItemOut(BaseModel):
    id: str
    sale_id: str
    book_id: str
    book_title: Optional[str] = None
    quantity: int
    unit_price: Decimal
    discount: Decimal
    total: Decimal

    class Config:
        from_attributes = True


class SaleOut(BaseModel):
    id: str
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    user_id: Optional[str] = None
    total_amount: Decimal
    payment_method: str
    payment_status: str
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SaleDetail(SaleOut):
    items: List[SaleItemOut] = []


class SaleList(BaseModel):
    items: List[SaleOut]
    total: int
    page: int
    page_size: int
    total_pages: int


class SaleCreated(BaseModel):
    id: str
    total_amount: Decimal
    warnings: List[str] = []


class SaleStatusUpdate(BaseModel):
    payment_status: PaymentStatus
    notes: Optional[str] = Field(None, max_length=500, description="Reemplaza las notas de la venta")


class ReconcileResult(BaseModel):
    repaired: List[str] = []
    failed: List[str] = []


class ProductSaleHistoryEntry(BaseModel):
    sale_id: str
    date: Optional[datetime] = None
    customer_name: str
    quantity: int
    unit_price: Decimal
    total: Decimal
    payment_status: Optional[str] = None
