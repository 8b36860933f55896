from sqlalchemy import Column, Date, Numeric, String, Text

from app.common.mixins import BaseMixin
from app.database.database import Base


class FinancialTransaction(Base, BaseMixin):
    """
    Movimiento del libro financiero (receita/despesa).

    El vínculo con una venta o compra se guarda en `vinculo_id`/`vinculo_tipo`
    sin llave foránea; `referencia_externa` es la llave de idempotencia.
    """
    __tablename__ = "financial_transactions"

    descricao = Column(String(255), nullable=False)
    valor = Column(Numeric(12, 2), nullable=False)
    tipo = Column(String(10), nullable=False, index=True)  # receita | despesa

    data = Column(Date, nullable=False, index=True)
    data_vencimento = Column(Date, nullable=True)
    data_pagamento = Column(Date, nullable=True)

    categoria = Column(String(100), nullable=False, index=True)
    status = Column(String(12), nullable=False, default="pendente", index=True)  # confirmada | pendente | cancelada
    forma_pagamento = Column(String(20), nullable=False)

    observacoes = Column(Text, nullable=True)
    vinculo_id = Column(String(36), nullable=True, index=True)
    vinculo_tipo = Column(String(10), nullable=True)  # venda | compra | outro
    comprovante = Column(Text, nullable=True)  # URL o data URI
    link_venda = Column(String(255), nullable=True)

    referencia_externa = Column(String(100), nullable=True, unique=True)
