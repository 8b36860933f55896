"""
Esquemas Pydantic para el módulo de Reportes
"""

from pydantic import BaseModel, Field
from decimal import Decimal
from typing import List
from datetime import date
from enum import Enum


class TimeRange(str, Enum):
    TODAY = "today"
    YESTERDAY = "yesterday"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"
    CUSTOM = "custom"


class CategoryValue(BaseModel):
    category: str
    value: Decimal
    percentage: Decimal = Field(..., description="Porcentaje sobre el total del reporte")


class DateValue(BaseModel):
    date: str = Field(..., description="AAAA-MM-DD o AAAA-MM")
    value: Decimal


class TopSellingItem(BaseModel):
    id: str
    title: str
    quantity: int
    revenue: Decimal


class TopCustomer(BaseModel):
    id: str
    name: str
    purchases: int
    total_spent: Decimal


# Sales Report
class SalesReport(BaseModel):
    period: str = Field(..., description="dd/mm/aaaa - dd/mm/aaaa")
    period_start: date
    period_end: date
    total_sales: Decimal = Field(..., description="Monto vendido")
    sales_count: int
    total_items: int
    average_ticket: Decimal
    total_customers: int
    sales_by_category: List[CategoryValue]
    sales_by_date: List[DateValue]


# Inventory Report
class InventoryReport(BaseModel):
    total_items: int = Field(..., description="Unidades en stock")
    total_value: Decimal = Field(..., description="Valor a precio de compra")
    low_stock_items: int
    value_by_category: List[CategoryValue]
    top_selling_items: List[TopSellingItem]


# Financial Report
class FinancialReport(BaseModel):
    period_start: date
    period_end: date
    revenue: Decimal
    expenses: Decimal
    profit: Decimal
    profit_margin: Decimal = Field(..., description="Lucro sobre receitas, en porcentaje")
    revenue_by_category: List[CategoryValue]
    expenses_by_category: List[CategoryValue]
    profit_by_month: List[DateValue]


# Customer Report
class CustomerReport(BaseModel):
    period_start: date
    period_end: date
    total_customers: int
    new_customers: int
    active_customers: int
    top_customers: List[TopCustomer]
    customers_by_region: List[CategoryValue]
