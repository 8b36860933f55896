from sqlalchemy import Column, ForeignKey, Integer, String, Text

from app.common.mixins import BaseMixin
from app.database.database import Base


class StockMovement(Base, BaseMixin):
    """Registro de auditoría de cambios de stock. Solo se inserta, nunca se modifica."""
    __tablename__ = "stock_movements"

    book_id = Column(String(36), ForeignKey("books.id"), nullable=False, index=True)
    type = Column(String(10), nullable=False)  # entrada | saida
    quantity = Column(Integer, nullable=False)  # Siempre positiva; el sentido lo da `type`
    reason = Column(String(20), nullable=False)  # compra, venda, devolucao, ajuste, perda, estorno, outro
    notes = Column(Text, nullable=True)
    responsible = Column(String(255), nullable=True)
