from pydantic import BaseModel, Field
from decimal import Decimal
from typing import List, Optional
from datetime import datetime


class SalesSummary(BaseModel):
    today: Decimal = Decimal("0")
    month: Decimal = Decimal("0")
    last_month: Decimal = Decimal("0")
    trend: int = Field(0, description="Variación % del mes actual contra el anterior")


class CustomerSummary(BaseModel):
    total: int = 0
    active: int = Field(0, description="Clientes con ventas en la ventana de actividad")
    trend: int = 0


class InventorySummary(BaseModel):
    total_units: int = 0
    total_products: int = 0
    low_stock: int = 0
    trend: int = 0


class RecentActivity(BaseModel):
    id: str
    type: str = "sale"
    description: str
    time: str
    link: Optional[str] = None
    created_at: Optional[datetime] = None


class DashboardSummary(BaseModel):
    sales: SalesSummary
    customers: CustomerSummary
    inventory: InventorySummary
    recent_activities: List[RecentActivity] = []
