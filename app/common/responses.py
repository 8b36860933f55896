"""
Envelope uniforme de respuesta de servicios: {data, error, status}
"""
import logging
from typing import Any, Optional

from fastapi import HTTPException, status as http_status
from pydantic import BaseModel

logger = logging.getLogger(__name__)

SUCCESS = "success"
ERROR = "error"

NOT_FOUND_MARKERS = ("no encontrad",)
UNAVAILABLE_MARKERS = ("no disponible",)


class ServiceResponse(BaseModel):
    data: Any = None
    error: Optional[str] = None
    status: str = SUCCESS

    @classmethod
    def success(cls, data: Any = None) -> "ServiceResponse":
        return cls(data=data, error=None, status=SUCCESS)

    @classmethod
    def failure(cls, error: str) -> "ServiceResponse":
        return cls(data=None, error=error, status=ERROR)

    @property
    def ok(self) -> bool:
        return self.status == SUCCESS


def unwrap(response: ServiceResponse) -> Any:
    """
    Devolver `data` o lanzar HTTPException si el envelope trae error.

    El tipo de error se deduce del mensaje (no hay códigos discriminados).
    """
    if response.ok:
        return response.data

    message = response.error or "Error desconocido"
    lowered = message.lower()
    if any(marker in lowered for marker in NOT_FOUND_MARKERS):
        code = http_status.HTTP_404_NOT_FOUND
    elif any(marker in lowered for marker in UNAVAILABLE_MARKERS):
        code = http_status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        code = http_status.HTTP_400_BAD_REQUEST
    logger.debug(f"Envelope con error convertido a HTTP {code}: {message}")
    raise HTTPException(status_code=code, detail=message)
