from fastapi import APIRouter

from app.common.responses import unwrap
from app.dependencies.storeDependencies import store_dependency
from app.modules.dashboard.schemas import DashboardSummary
from app.modules.dashboard.service import DashboardService

dashboard_router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


@dashboard_router.get("/summary", response_model=DashboardSummary)
def dashboard_summary(store: store_dependency):
    """Ventas, clientes, inventario y actividad reciente."""
    return unwrap(DashboardService(store).get_summary())
