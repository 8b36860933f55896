"""
Esquemas Pydantic para el módulo Financiero

- Transacciones (receitas y despesas) con vínculo opcional a venta/compra
- Filtros de listado con saldo actual
- Gastos recurrentes (periodicidad y fecha final)
- Resumen financiero por categoría
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from decimal import Decimal
from typing import Optional, List, Dict
from datetime import date, datetime
from enum import Enum


# ===== ENUMS =====

class TransactionType(str, Enum):
    RECEITA = "receita"
    DESPESA = "despesa"


class TransactionStatus(str, Enum):
    CONFIRMADA = "confirmada"
    PENDENTE = "pendente"
    CANCELADA = "cancelada"


class PaymentForm(str, Enum):
    DINHEIRO = "dinheiro"
    CREDITO = "credito"
    DEBITO = "debito"
    PIX = "pix"
    BOLETO = "boleto"
    TRANSFERENCIA = "transferencia"


class LinkType(str, Enum):
    VENDA = "venda"
    COMPRA = "compra"
    OUTRO = "outro"


class Periodicity(str, Enum):
    MENSAL = "mensal"
    TRIMESTRAL = "trimestral"
    SEMESTRAL = "semestral"
    ANUAL = "anual"


# ===== TRANSACTION SCHEMAS =====

class TransactionBase(BaseModel):
    descricao: str = Field(..., min_length=1, max_length=255, description="Descripción")
    valor: Decimal = Field(..., gt=0, description="Monto (siempre positivo)")
    tipo: TransactionType
    data: date = Field(..., description="Fecha de la transacción")
    data_vencimento: Optional[date] = Field(None, description="Fecha de vencimiento")
    data_pagamento: Optional[date] = Field(None, description="Fecha de pago")
    categoria: str = Field(..., min_length=1, max_length=100)
    status: TransactionStatus = TransactionStatus.PENDENTE
    forma_pagamento: PaymentForm
    observacoes: Optional[str] = None
    vinculo_id: Optional[str] = None
    vinculo_tipo: Optional[LinkType] = None
    comprovante: Optional[str] = Field(None, description="URL del comprobante o data URI")

    @field_validator('valor')
    @classmethod
    def round_valor(cls, v):
        return v.quantize(Decimal("0.01"))


class TransactionCreate(TransactionBase):
    pass


class TransactionUpdate(BaseModel):
    descricao: Optional[str] = Field(None, min_length=1, max_length=255)
    valor: Optional[Decimal] = Field(None, gt=0)
    data: Optional[date] = None
    data_vencimento: Optional[date] = None
    data_pagamento: Optional[date] = None
    categoria: Optional[str] = Field(None, min_length=1, max_length=100)
    forma_pagamento: Optional[PaymentForm] = None
    observacoes: Optional[str] = None
    comprovante: Optional[str] = None


class TransactionStatusUpdate(BaseModel):
    status: TransactionStatus


class TransactionOut(TransactionBase):
    id: str
    link_venda: Optional[str] = None
    referencia_externa: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TransactionFilters(BaseModel):
    tipo: Optional[TransactionType] = None
    status: Optional[TransactionStatus] = None
    data_inicio: Optional[date] = None
    data_fim: Optional[date] = None
    categoria: Optional[str] = None
    busca: Optional[str] = None
    vinculo_id: Optional[str] = None
    vinculo_tipo: Optional[LinkType] = None


class TransactionPage(BaseModel):
    transacoes: List[TransactionOut]
    total: int
    total_pages: int
    page: int
    limit: int
    current_balance: Decimal


# ===== GASTOS RECURRENTES =====

class RecurrenceRequest(BaseModel):
    periodicidade: Periodicity
    data_fim: Optional[date] = Field(None, description="Fecha final de la recurrencia (obligatoria)")


class ExpenseCreate(BaseModel):
    descricao: str = Field(..., min_length=1, max_length=255)
    valor: Decimal = Field(..., gt=0)
    data: date
    data_vencimento: Optional[date] = None
    data_pagamento: Optional[date] = None
    categoria: str = Field(..., min_length=1, max_length=100)
    status: TransactionStatus = TransactionStatus.PENDENTE
    forma_pagamento: PaymentForm
    observacoes: Optional[str] = None
    comprovante: Optional[str] = None
    vinculo_id: Optional[str] = None
    vinculo_tipo: Optional[LinkType] = None
    recorrencia: Optional[RecurrenceRequest] = None

    @model_validator(mode='after')
    def validate_due_date(self):
        if self.data_vencimento and self.data_vencimento < self.data:
            raise ValueError('La fecha de vencimiento no puede ser anterior a la fecha de la despesa')
        return self

    def to_transaction(self) -> TransactionCreate:
        return TransactionCreate(
            **self.model_dump(exclude={"recorrencia"}),
            tipo=TransactionType.DESPESA,
        )


class ExpenseResult(BaseModel):
    despesa: TransactionOut
    parcelas: List[TransactionOut] = []
    parcelas_erro: Optional[str] = None


# ===== RESUMEN =====

class CategoryTotals(BaseModel):
    receitas: Decimal = Decimal("0")
    despesas: Decimal = Decimal("0")


class FinancialSummary(BaseModel):
    total_receitas: Decimal
    total_despesas: Decimal
    saldo: Decimal
    por_categoria: Dict[str, CategoryTotals]


class ReceiptUploadResponse(BaseModel):
    comprovante: str
    inline: bool = Field(False, description="True si se guardó embebido por denegación del storage")


# ===== CONTAS A PAGAR =====

class DueFilter(str, Enum):
    TODOS = "todos"
    ATRASADOS = "atrasados"
    HOJE = "hoje"
    PROXIMOS = "proximos"


class PayableOrder(str, Enum):
    VENCIMENTO_ASC = "vencimento-asc"
    VENCIMENTO_DESC = "vencimento-desc"
    VALOR_ASC = "valor-asc"
    VALOR_DESC = "valor-desc"


class PayablesFilters(BaseModel):
    vencimento: DueFilter = DueFilter.TODOS
    categoria: Optional[str] = None
    busca: Optional[str] = None
    data_inicio: Optional[date] = Field(None, description="Vencimiento desde")
    data_fim: Optional[date] = Field(None, description="Vencimiento hasta")
    ordenacao: PayableOrder = PayableOrder.VENCIMENTO_ASC


class PayableOut(TransactionOut):
    dias_atraso: int = 0
    vencida: bool = False
    vence_hoje: bool = False


class AccountsPayable(BaseModel):
    data_referencia: date
    contas: List[PayableOut]
    total_pendente: Decimal
    total_atrasado: Decimal
    total_proximos_dias: Decimal
    quantidade_atrasadas: int
    categorias: List[str]


# ===== FLUXO DE CAIXA =====

class CashFlowPeriod(str, Enum):
    MES = "mes"
    TRIMESTRE = "trimestre"
    ANO = "ano"
    PERSONALIZADO = "personalizado"


class MonthlyCashFlow(BaseModel):
    chave: str = Field(..., description="AAAA-MM")
    mes: str = Field(..., description="Nombre del mes en portugués, p. ej. Março/2024")
    receitas: Decimal
    despesas: Decimal
    saldo: Decimal


class CashFlowSummary(BaseModel):
    total_receitas: Decimal
    total_despesas: Decimal
    saldo: Decimal
    receitas_por_categoria: Dict[str, Decimal]
    despesas_por_categoria: Dict[str, Decimal]


class CashFlow(BaseModel):
    data_inicio: date
    data_fim: date
    resumo: CashFlowSummary
    meses: List[MonthlyCashFlow]
