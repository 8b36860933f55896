"""
Generador de gastos recurrentes

A partir de una despesa base genera las parcelas futuras con aritmética de
meses calendario (relativedelta), preservando la distancia en días entre la
fecha y el vencimiento de la despesa base.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta
from typing import Any, Callable, Dict, List, Optional

from dateutil.relativedelta import relativedelta

from app.common.responses import ServiceResponse
from app.core.config import settings
from app.modules.finance.schemas import Periodicity

logger = logging.getLogger(__name__)

PERIODICITY_MONTHS = {
    Periodicity.MENSAL.value: 1,
    Periodicity.TRIMESTRAL.value: 3,
    Periodicity.SEMESTRAL.value: 6,
    Periodicity.ANUAL.value: 12,
}

IDENTITY_FIELDS = ("id", "created_at", "updated_at", "referencia_externa")


class RecurringExpenseError(Exception):
    """Falló al menos una parcela; `created` guarda las que sí se crearon."""

    def __init__(self, message: str, created: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.message = message
        self.created = created or []


def interval_months(periodicidade) -> int:
    key = periodicidade.value if isinstance(periodicidade, Periodicity) else periodicidade
    try:
        return PERIODICITY_MONTHS[key]
    except KeyError:
        raise ValueError(f"Periodicidad no soportada: {key}")


def months_between(start: date, end: date) -> int:
    """Meses completos entre dos fechas."""
    delta = relativedelta(end, start)
    return delta.years * 12 + delta.months


def validate_recurrence(start: date, end: Optional[date], periodicidade) -> Optional[str]:
    """
    Validación previa a la generación. Devuelve el mensaje de error o None.
    """
    if end is None:
        return "La fecha final es obligatoria"
    if end <= start:
        return "La fecha final debe ser posterior a la inicial"
    interval = interval_months(periodicidade)
    if months_between(start, end) < interval:
        unit = "mes" if interval == 1 else "meses"
        return f"El período mínimo para recurrencia {_label(periodicidade)} es de {interval} {unit}"
    return None


def _label(periodicidade) -> str:
    return periodicidade.value if isinstance(periodicidade, Periodicity) else str(periodicidade)


def build_installments(base: Dict[str, Any], periodicidade, end: date) -> List[Dict[str, Any]]:
    """
    Parcelas posteriores a la primera ocurrencia (ya creada).

    Cada parcela k cae en data + k*intervalo meses mientras no pase de `end`.
    """
    interval = interval_months(periodicidade)
    start: date = base["data"]
    due: Optional[date] = base.get("data_vencimento")
    gap = (due - start).days if due else None
    suffix = f" (Parcela recorrente - {_label(periodicidade)})"

    template = {key: value for key, value in base.items() if key not in IDENTITY_FIELDS}
    installments = []
    k = 1
    while True:
        occurrence = start + relativedelta(months=k * interval)
        if occurrence > end:
            break
        installment = dict(template)
        installment["data"] = occurrence
        installment["data_vencimento"] = occurrence + timedelta(days=gap) if gap is not None else occurrence
        installment["observacoes"] = ((base.get("observacoes") or "") + suffix).strip()
        installments.append(installment)
        k += 1
    return installments


def create_recurring_expenses(
    create: Callable[[Dict[str, Any]], ServiceResponse],
    base: Dict[str, Any],
    periodicidade,
    end: date,
    max_workers: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """
    Crear todas las parcelas en paralelo.

    Espera a que terminen todas las llamadas; si alguna falló lanza
    RecurringExpenseError con el primer error (en orden de parcela). Las
    parcelas creadas no se revierten.
    """
    installments = build_installments(base, periodicidade, end)
    if not installments:
        return []

    workers = max_workers or settings.RECURRING_MAX_WORKERS
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [executor.submit(create, installment) for installment in installments]

    created: List[Dict[str, Any]] = []
    first_error: Optional[str] = None
    for installment, future in zip(installments, futures):
        try:
            response = future.result()
        except Exception as e:
            logger.error(f"Error creando parcela de {installment['data']}: {e}")
            first_error = first_error or str(e)
            continue
        if not response.ok:
            logger.error(f"Error creando parcela de {installment['data']}: {response.error}")
            first_error = first_error or response.error
            continue
        created.append(response.data)

    if first_error is not None:
        raise RecurringExpenseError(first_error, created=created)

    logger.info(f"{len(created)} parcelas recurrentes ({_label(periodicidade)}) creadas")
    return created
