from sqlalchemy import Column, Integer, Numeric, String, Text

from app.common.mixins import BaseMixin
from app.database.database import Base


class Book(Base, BaseMixin):
    """Libro/producto del catálogo. `quantity` nunca queda negativa (se recorta en cada escritura)."""
    __tablename__ = "books"

    title = Column(String(255), nullable=False, index=True)
    author = Column(String(255), nullable=True, index=True)
    isbn = Column(String(20), nullable=True, index=True)
    publisher = Column(String(255), nullable=True)
    category = Column(String(100), nullable=True, index=True)
    subcategory = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)

    purchase_price = Column(Numeric(10, 2), nullable=False, default=0)
    selling_price = Column(Numeric(10, 2), nullable=False, default=0)

    quantity = Column(Integer, nullable=False, default=0)
    minimum_stock = Column(Integer, nullable=True)

    supplier_id = Column(String(36), nullable=True)
