from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
import logging

from app.core.config import settings
from app.database.database import sync_engine, Base
from app.gateway.selection import load_models
from app.common.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware

# Import routers
from app.modules.auth.router import auth_router
from app.modules.books.router import books_router
from app.modules.customers.router import customers_router
from app.modules.inventory.router import stock_router
from app.modules.sales.router import sales_router
from app.modules.finance.router import financial_router
from app.modules.dashboard.router import dashboard_router
from app.modules.reports.router import reports_router

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="Livraria ERP API",
    description="ERP de librería: catálogo, clientes, ventas, stock y finanzas, con modo de datos de ejemplo",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

# Add middleware (order matters!)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLoggingMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth_router)
app.include_router(books_router)
app.include_router(customers_router)
app.include_router(stock_router)
app.include_router(sales_router)
app.include_router(financial_router)
app.include_router(dashboard_router)
app.include_router(reports_router)

# Create database tables (only for development - use migrations in production)
load_models()
if settings.ENVIRONMENT == "development" and sync_engine is not None:
    Base.metadata.create_all(bind=sync_engine)


@app.get("/")
def read_root():
    return {
        "message": "Livraria ERP API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
def health_check():
    return {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
        "database_configured": settings.database_configured,
    }


@app.on_event("startup")
async def startup_event():
    logger.info("Livraria ERP API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")
    if sync_engine is None:
        logger.info("Modo datos de ejemplo: sin DATABASE_URL, las operaciones usan el almacén en memoria")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Livraria ERP API shutting down...")
