"""
Utilidades de fecha/hora.

Todas las marcas de tiempo se guardan en UTC sin tzinfo (naive); las fechas de
calendario (transacciones financieras, "hoy" del dashboard) se calculan en la
zona horaria de la tienda.
"""
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple, Union

from dateutil import tz

from app.core.config import settings

MONTH_NAMES = (
    "janeiro", "fevereiro", "março", "abril", "maio", "junho",
    "julho", "agosto", "setembro", "outubro", "novembro", "dezembro",
)


def utcnow() -> datetime:
    """Hora actual en UTC (naive, canónica)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def store_timezone():
    return tz.gettz(settings.TIMEZONE) or tz.UTC


def to_local_date(value: Union[date, datetime, str, None]) -> Optional[date]:
    """
    Convertir un valor a fecha de calendario en la zona de la tienda.

    - datetime naive se interpreta como UTC
    - str acepta 'YYYY-MM-DD' o ISO-8601 completo
    """
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = value.strip()
        if len(value) == 10:
            return date.fromisoformat(value)
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        value = datetime.fromisoformat(value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(store_timezone()).date()
    return value


def local_today(now: Optional[datetime] = None) -> date:
    return to_local_date(now or utcnow())


def local_midnight_utc(day: date) -> datetime:
    """Medianoche local de `day` expresada en UTC naive."""
    local = datetime.combine(day, time.min).replace(tzinfo=store_timezone())
    return local.astimezone(timezone.utc).replace(tzinfo=None)


def local_day_bounds(start: date, end: date) -> Tuple[datetime, datetime]:
    """Intervalo UTC [inicio de `start`, inicio del día siguiente a `end`) en hora local."""
    return local_midnight_utc(start), local_midnight_utc(end + timedelta(days=1))
