"""
Almacenamiento de comprobantes en MinIO

Si el storage deniega la escritura (política del bucket), el comprobante se
guarda embebido como data URI en la propia transacción.
"""
import base64
import io
import logging
import re
from typing import Optional, Tuple
from uuid import uuid4

from minio import Minio

from app.common.time_utils import utcnow
from app.core.config import settings

logger = logging.getLogger(__name__)

ACCESS_DENIED_CODES = ("AccessDenied", "AllAccessDisabled", "AccountProblem")
ACCESS_DENIED_MARKERS = ("access denied", "row-level security", "permission denied")


class ReceiptValidationError(ValueError):
    """Archivo de comprobante inválido (tipo o tamaño)."""


def is_access_denied(error: Exception) -> bool:
    code = getattr(error, "code", None)
    if code in ACCESS_DENIED_CODES:
        return True
    message = str(error).lower()
    return any(marker in message for marker in ACCESS_DENIED_MARKERS)


def inline_data_uri(content: bytes, content_type: str) -> str:
    return f"data:{content_type};base64,{base64.b64encode(content).decode('ascii')}"


class ReceiptStorage:
    """Service for handling receipt uploads"""

    def __init__(self, client: Optional[Minio] = None, bucket_name: Optional[str] = None):
        self.client = client or Minio(
            settings.minio_endpoint,
            access_key=settings.MINIO_ACCESS_KEY,
            secret_key=settings.MINIO_SECRET_KEY,
            secure=settings.MINIO_USE_SSL
        )
        self.bucket_name = bucket_name or settings.MINIO_BUCKET_NAME
        self._bucket_ready = False

    def _ensure_bucket_exists(self):
        """Ensure the bucket exists, create if it doesn't"""
        if self._bucket_ready:
            return
        if not self.client.bucket_exists(bucket_name=self.bucket_name):
            self.client.make_bucket(bucket_name=self.bucket_name)
            logger.info(f"Created MinIO bucket: {self.bucket_name}")
        self._bucket_ready = True

    def generate_file_key(self, filename: str) -> str:
        """Structure: comprovantes/yyyy/mm/dd/<uuid>-<filename>"""
        now = utcnow()
        safe_name = re.sub(r"[^A-Za-z0-9._-]", "_", filename or "comprovante")
        return f"comprovantes/{now.year}/{now.month:02d}/{now.day:02d}/{uuid4()}-{safe_name}"

    def public_url(self, key: str) -> str:
        scheme = "https" if settings.MINIO_USE_SSL else "http"
        return f"{scheme}://{settings.minio_endpoint}/{self.bucket_name}/{key}"

    def validate(self, content: bytes, content_type: str) -> None:
        if content_type not in settings.ALLOWED_FILE_TYPES:
            raise ReceiptValidationError(f"Tipo de archivo {content_type} no permitido")
        if len(content) > settings.MAX_FILE_SIZE:
            raise ReceiptValidationError(
                f"El archivo supera el tamaño máximo de {settings.MAX_FILE_SIZE // (1024 * 1024)}MB"
            )

    def upload(self, filename: str, content: bytes, content_type: str) -> Tuple[str, bool]:
        """
        Subir comprobante. Devuelve (referencia, inline).

        `inline` es True cuando el storage negó el acceso y se devolvió un data URI.
        Cualquier otro error del storage se propaga.
        """
        self.validate(content, content_type)
        key = self.generate_file_key(filename)
        try:
            self._ensure_bucket_exists()
            self.client.put_object(
                bucket_name=self.bucket_name,
                object_name=key,
                data=io.BytesIO(content),
                length=len(content),
                content_type=content_type,
            )
        except Exception as e:
            if not is_access_denied(e):
                logger.error(f"MinIO upload error: {e}")
                raise
            logger.warning(f"Storage denegó la subida de {filename}; guardando comprobante embebido")
            return inline_data_uri(content, content_type), True

        return self.public_url(key), False
