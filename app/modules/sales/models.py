from sqlalchemy import Column, ForeignKey, Integer, Numeric, String, Text

from app.common.mixins import BaseMixin
from app.database.database import Base


class Sale(Base, BaseMixin):
    __tablename__ = "sales"

    customer_id = Column(String(36), ForeignKey("customers.id"), nullable=True, index=True)
    user_id = Column(String(36), nullable=True, index=True)  # Operador (proveedor de auth externo)

    total_amount = Column(Numeric(12, 2), nullable=False)
    payment_method = Column(String(20), nullable=False)  # cash, credit_card, debit_card, pix, transfer
    payment_status = Column(String(20), nullable=False, default="paid", index=True)  # paid, pending, canceled

    notes = Column(Text, nullable=True)


class SaleItem(Base, BaseMixin):
    __tablename__ = "sale_items"

    sale_id = Column(String(36), ForeignKey("sales.id"), nullable=False, index=True)
    book_id = Column(String(36), ForeignKey("books.id"), nullable=False, index=True)

    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    discount = Column(Numeric(10, 2), nullable=False, default=0)
    total = Column(Numeric(12, 2), nullable=False)
