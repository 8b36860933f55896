"""
Esquemas Pydantic para el módulo de Clientes

Validaciones fiscales específicas para Brasil:
- pf (persona física): CPF obligatorio y válido
- pj (persona jurídica): CNPJ obligatorio y válido
"""

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from decimal import Decimal
from typing import Optional, List
from datetime import datetime
from enum import Enum

from app.common.validators import format_cnpj, format_cpf, validate_brazil_phone, validate_cnpj, validate_cpf


# ===== ENUMS =====

class CustomerType(str, Enum):
    PF = "pf"
    PJ = "pj"


class CustomerStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


# ===== CUSTOMER SCHEMAS =====

class CustomerBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Nombre o nombre fantasía")
    social_name: Optional[str] = Field(None, max_length=255, description="Razón social (pj)")
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=30)

    address: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, min_length=2, max_length=2, description="UF")
    zip: Optional[str] = Field(None, max_length=10, description="CEP")

    customer_type: CustomerType = CustomerType.PF
    cpf: Optional[str] = None
    cnpj: Optional[str] = None
    status: CustomerStatus = CustomerStatus.ACTIVE
    notes: Optional[str] = None

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v):
        if v is None or v.strip() == "":
            return None
        if not validate_brazil_phone(v):
            raise ValueError('Teléfono inválido. Use formato brasileño: (11) 99999-8888 o +5511999998888')
        return v

    @field_validator('state')
    @classmethod
    def upper_state(cls, v):
        return v.upper() if v else v


class CustomerCreate(CustomerBase):

    @model_validator(mode='after')
    def validate_document(self):
        if self.customer_type == CustomerType.PF:
            if not self.cpf:
                raise ValueError('CPF es obligatorio para persona física')
            if not validate_cpf(self.cpf):
                raise ValueError('CPF inválido')
            self.cpf = format_cpf(self.cpf)
            self.cnpj = None
        else:
            if not self.cnpj:
                raise ValueError('CNPJ es obligatorio para persona jurídica')
            if not validate_cnpj(self.cnpj):
                raise ValueError('CNPJ inválido')
            self.cnpj = format_cnpj(self.cnpj)
            self.cpf = None
        return self


class CustomerUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    social_name: Optional[str] = Field(None, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=30)
    address: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, min_length=2, max_length=2)
    zip: Optional[str] = Field(None, max_length=10)
    cpf: Optional[str] = None
    cnpj: Optional[str] = None
    status: Optional[CustomerStatus] = None
    notes: Optional[str] = None

    @field_validator('cpf')
    @classmethod
    def validate_cpf_field(cls, v):
        if v is None:
            return v
        if not validate_cpf(v):
            raise ValueError('CPF inválido')
        return format_cpf(v)

    @field_validator('cnpj')
    @classmethod
    def validate_cnpj_field(cls, v):
        if v is None:
            return v
        if not validate_cnpj(v):
            raise ValueError('CNPJ inválido')
        return format_cnpj(v)


class CustomerOut(CustomerBase):
    id: str
    email: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CustomerList(BaseModel):
    items: List[CustomerOut]
    total: int
    page: int
    page_size: int
    total_pages: int


# ===== RESUMEN DE COMPRAS =====

class PurchaseOut(BaseModel):
    id: str
    created_at: datetime
    total_amount: Decimal
    payment_method: str
    payment_status: str


class CustomerPurchaseSummary(BaseModel):
    customer_id: str
    total_purchases: int
    total_spent: Decimal
    last_purchase_date: Optional[datetime] = None
    recent_purchases: List[PurchaseOut] = []
