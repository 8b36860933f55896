"""
Utilidades del módulo de Reportes

Exportación CSV de la tabla principal de cada reporte.
"""

import csv
import io
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List

from fastapi import Response


def create_csv_response(
    data: List[Dict[str, Any]],
    filename: str,
    headers: Dict[str, str] = None
) -> Response:
    """
    Respuesta CSV a partir de una lista de diccionarios.

    `headers` mapea el nombre del campo al encabezado de la columna; sin él se
    usan las claves de la primera fila.
    """
    fieldnames = list(headers.keys()) if headers else list(data[0].keys()) if data else []
    csv_headers = list(headers.values()) if headers else fieldnames

    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=fieldnames, extrasaction="ignore")
    writer.writerow(dict(zip(fieldnames, csv_headers)))
    for row in data:
        writer.writerow({key: format_csv_value(value) for key, value in row.items()})
    csv_content = output.getvalue()
    output.close()

    return Response(
        content=csv_content,
        media_type="text/csv",
        headers={
            "Content-Disposition": f"attachment; filename={filename}",
            "Content-Type": "text/csv; charset=utf-8"
        }
    )


def format_csv_value(value: Any) -> str:
    if value is None:
        return ""
    elif isinstance(value, (date, datetime)):
        return value.isoformat()
    elif isinstance(value, bool):
        return "Sim" if value else "Não"
    elif isinstance(value, Decimal):
        return str(value)
    return str(value)


def prepare_sales_report_csv(report_data: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Ventas por día"""
    return [{"date": row["date"], "value": row["value"]} for row in report_data["sales_by_date"]]


def prepare_inventory_report_csv(report_data: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Libros más vendidos"""
    return [
        {"id": item["id"], "title": item["title"], "quantity": item["quantity"], "revenue": item["revenue"]}
        for item in report_data["top_selling_items"]
    ]


def prepare_financial_report_csv(report_data: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Lucro por mes"""
    return [{"date": row["date"], "value": row["value"]} for row in report_data["profit_by_month"]]


def prepare_customer_report_csv(report_data: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Mejores clientes"""
    return [
        {
            "id": customer["id"],
            "name": customer["name"],
            "purchases": customer["purchases"],
            "total_spent": customer["total_spent"],
        }
        for customer in report_data["top_customers"]
    ]


CSV_HEADERS = {
    "sales": {"date": "Data", "value": "Total vendido"},
    "inventory": {"id": "ID", "title": "Título", "quantity": "Quantidade", "revenue": "Receita"},
    "financial": {"date": "Mês", "value": "Lucro"},
    "customers": {"id": "ID", "name": "Cliente", "purchases": "Compras", "total_spent": "Total gasto"},
}
