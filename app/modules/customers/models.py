from sqlalchemy import Column, String, Text

from app.common.mixins import BaseMixin
from app.database.database import Base


class Customer(Base, BaseMixin):
    __tablename__ = "customers"

    name = Column(String(255), nullable=False, index=True)
    social_name = Column(String(255), nullable=True)  # Razón social (pj)
    email = Column(String(255), nullable=True, index=True)
    phone = Column(String(30), nullable=True)

    address = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(2), nullable=True)
    zip = Column(String(10), nullable=True)

    customer_type = Column(String(2), nullable=False, default="pf")  # pf | pj
    cpf = Column(String(14), nullable=True, index=True)
    cnpj = Column(String(18), nullable=True, index=True)

    status = Column(String(10), nullable=False, default="active")  # active | inactive
    notes = Column(Text, nullable=True)
