from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

# Valores de plantilla que indican una conexión sin configurar
PLACEHOLDER_MARKERS = ("your-project", "placeholder", "changeme", "example.com")


class Settings(BaseSettings):
    # Database settings
    DATABASE_URL: str = ''
    FORCE_REAL_DATA: bool = False

    # MinIO settings (comprobantes)
    MINIO_HOST: str = 'minio'
    MINIO_PORT: int = 9000
    MINIO_ACCESS_KEY: str = 'minioadmin'
    MINIO_SECRET_KEY: str = 'minioadmin'
    MINIO_BUCKET_NAME: str = 'comprovantes'
    MINIO_USE_SSL: bool = False

    # JWT settings
    APP_SECRET_STRING: str = 'your-super-secret-key-here-change-in-production-2024'
    ALGORITHM: str = 'HS256'
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 8

    # Usuario demo del modo sin backend
    DEMO_USER_EMAIL: str = 'admin@livraria.com'
    DEMO_USER_PASSWORD: str = 'admin123'

    # Fallback local de transacciones financieras
    LOCAL_FALLBACK_PATH: str = '.data/transacoes-locais.json'

    # Ventas
    SALE_VERIFICATION_DELAY_SECONDS: float = 1.5

    # Gastos recurrentes
    RECURRING_MAX_WORKERS: int = 4

    # Inventario y dashboard
    DEFAULT_MIN_STOCK: int = 5
    ACTIVE_CUSTOMER_WINDOW_DAYS: int = 90
    PAYABLES_UPCOMING_DAYS: int = 7

    # Reportes
    REPORT_TOP_LIMIT: int = 10
    TOP_SELLING_WINDOW_DAYS: int = 30
    TIMEZONE: str = 'America/Sao_Paulo'

    # File upload limits
    MAX_FILE_SIZE: int = 10 * 1024 * 1024  # 10MB
    ALLOWED_FILE_TYPES: list = ["image/jpeg", "image/png", "application/pdf"]

    # Pagination
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    @property
    def database_configured(self) -> bool:
        url = (self.DATABASE_URL or '').strip()
        if not url:
            return False
        lowered = url.lower()
        return not any(marker in lowered for marker in PLACEHOLDER_MARKERS)

    @property
    def minio_endpoint(self) -> str:
        return f"{self.MINIO_HOST}:{self.MINIO_PORT}"

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("DEBUG", "FORCE_REAL_DATA", "MINIO_USE_SSL", mode="before")
    @classmethod
    def parse_bool(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)

settings = Settings()
