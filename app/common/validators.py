"""
Validadores específicos para Brasil (clientes de la librería)
"""
import re
from typing import Optional


def clean_document(value: str) -> str:
    """Quitar puntos, guiones, barras y espacios de CPF/CNPJ."""
    return re.sub(r'[\.\s\-/]', '', value or '')


def validate_brazil_phone(phone: str) -> bool:
    """
    Valida teléfono brasileño.
    Formatos válidos:
    - +55DDXXXXXXXXX (celular, 9 dígitos después del DDD)
    - +55DDXXXXXXXX (fijo, 8 dígitos después del DDD)
    - (DD) XXXXX-XXXX / (DD) XXXX-XXXX
    """
    cleaned = re.sub(r'[\s\-\(\)]', '', phone)

    patterns = [
        r'^\+55[1-9][0-9]9[0-9]{8}$',   # +55 11 9XXXXXXXX (celular)
        r'^\+55[1-9][0-9][2-8][0-9]{7}$',  # +55 11 3XXXXXXX (fijo)
        r'^[1-9][0-9]9[0-9]{8}$',        # 11 9XXXXXXXX
        r'^[1-9][0-9][2-8][0-9]{7}$',    # 11 3XXXXXXX
    ]

    return any(re.match(pattern, cleaned) for pattern in patterns)


def _check_digit(digits: str, weights: list) -> int:
    total = sum(int(d) * w for d, w in zip(digits, weights))
    remainder = total % 11
    return 0 if remainder < 2 else 11 - remainder


def validate_cpf(cpf: str) -> bool:
    """
    Valida CPF (persona física).
    - 11 dígitos
    - No puede ser una secuencia repetida (000.000.000-00)
    - Verifica los dos dígitos de control
    """
    cleaned = clean_document(cpf)

    if not cleaned.isdigit() or len(cleaned) != 11:
        return False

    if cleaned == cleaned[0] * 11:
        return False

    first = _check_digit(cleaned[:9], list(range(10, 1, -1)))
    second = _check_digit(cleaned[:10], list(range(11, 1, -1)))
    return cleaned[-2:] == f"{first}{second}"


def validate_cnpj(cnpj: str) -> bool:
    """
    Valida CNPJ (persona jurídica).
    - 14 dígitos
    - Verifica los dos dígitos de control con pesos 5..2/9..2
    """
    cleaned = clean_document(cnpj)

    if not cleaned.isdigit() or len(cleaned) != 14:
        return False

    if cleaned == cleaned[0] * 14:
        return False

    weights = [5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2]
    first = _check_digit(cleaned[:12], weights)
    second = _check_digit(cleaned[:13], [6] + weights)
    return cleaned[-2:] == f"{first}{second}"


def format_cpf(cpf: str) -> Optional[str]:
    """Formatear CPF como XXX.XXX.XXX-XX"""
    cleaned = clean_document(cpf)
    if len(cleaned) != 11:
        return None
    return f"{cleaned[:3]}.{cleaned[3:6]}.{cleaned[6:9]}-{cleaned[9:]}"


def format_cnpj(cnpj: str) -> Optional[str]:
    """Formatear CNPJ como XX.XXX.XXX/XXXX-XX"""
    cleaned = clean_document(cnpj)
    if len(cleaned) != 14:
        return None
    return f"{cleaned[:2]}.{cleaned[2:5]}.{cleaned[5:8]}/{cleaned[8:12]}-{cleaned[12:]}"
