"""
Datos de ejemplo para el modo sin backend (demo)
"""
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List

from app.common.time_utils import local_today, utcnow
from app.gateway.base import Row


def sample_books() -> List[Row]:
    now = utcnow()
    return [
        {
            "id": "1",
            "title": "O Senhor dos Anéis",
            "author": "J.R.R. Tolkien",
            "isbn": "9788533613379",
            "publisher": "HarperCollins",
            "category": "Fantasia",
            "subcategory": "Épico",
            "purchase_price": Decimal("45.00"),
            "selling_price": Decimal("89.90"),
            "quantity": 23,
            "minimum_stock": 5,
            "supplier_id": "1",
            "created_at": now,
            "updated_at": now,
        },
        {
            "id": "2",
            "title": "Harry Potter e a Pedra Filosofal",
            "author": "J.K. Rowling",
            "isbn": "9788532511010",
            "publisher": "Rocco",
            "category": "Fantasia",
            "subcategory": "Jovem Adulto",
            "purchase_price": Decimal("22.50"),
            "selling_price": Decimal("45.50"),
            "quantity": 15,
            "minimum_stock": 8,
            "supplier_id": "2",
            "created_at": now,
            "updated_at": now,
        },
        {
            "id": "3",
            "title": "Dom Casmurro",
            "author": "Machado de Assis",
            "isbn": "9788535910663",
            "publisher": "Companhia das Letras",
            "category": "Clássico",
            "subcategory": "Literatura Brasileira",
            "purchase_price": Decimal("15.00"),
            "selling_price": Decimal("29.90"),
            "quantity": 42,
            "minimum_stock": 10,
            "supplier_id": "3",
            "created_at": now,
            "updated_at": now,
        },
    ]


def sample_customers() -> List[Row]:
    now = utcnow()
    return [
        {
            "id": "1",
            "name": "Maria Silva",
            "email": "maria.silva@example.com",
            "phone": "11999887766",
            "address": "Rua das Flores, 123",
            "city": "São Paulo",
            "state": "SP",
            "zip": "01234-567",
            "notes": "Cliente frequente",
            "customer_type": "pf",
            "cpf": "529.982.247-25",
            "status": "active",
            "created_at": now,
            "updated_at": now,
        },
        {
            "id": "2",
            "name": "João Pereira",
            "email": "joao.pereira@example.com",
            "phone": "11988776655",
            "address": "Av. Paulista, 1000",
            "city": "São Paulo",
            "state": "SP",
            "zip": "01310-100",
            "notes": "",
            "customer_type": "pf",
            "cpf": "111.444.777-35",
            "status": "active",
            "created_at": now,
            "updated_at": now,
        },
        {
            "id": "3",
            "name": "Empresa ABC Ltda",
            "social_name": "ABC Comércio e Serviços Ltda",
            "email": "contato@empresaabc.com",
            "phone": "11987654321",
            "address": "Rua Comercial, 500",
            "city": "São Paulo",
            "state": "SP",
            "zip": "04538-132",
            "notes": "Cliente corporativo",
            "customer_type": "pj",
            "cnpj": "11.222.333/0001-81",
            "status": "active",
            "created_at": now,
            "updated_at": now,
        },
    ]


def sample_transactions() -> List[Row]:
    """Transacciones iniciales del almacén local (TRX001-TRX005)."""
    today = local_today()
    base = [
        ("TRX001", "Venda - Pedido #V001", "85.90", 0, "receita", "Vendas", "confirmada", "credito", "V001"),
        ("TRX002", "Venda - Pedido #V002", "126.40", 0, "receita", "Vendas", "confirmada", "dinheiro", "V002"),
        ("TRX003", "Venda - Pedido #V003", "213.75", 1, "receita", "Vendas", "pendente", "pix", "V003"),
        ("TRX004", "Compra de Livros - Editora Companhia das Letras", "1250.00", 1, "despesa",
         "Compra de Livros", "confirmada", "transferencia", None),
        ("TRX005", "Venda - Pedido #V004", "45.00", 2, "receita", "Vendas", "confirmada", "debito", "V004"),
    ]
    rows = []
    for trx_id, descricao, valor, days_ago, tipo, categoria, status, forma, vinculo in base:
        dia: date = today - timedelta(days=days_ago)
        rows.append({
            "id": trx_id,
            "descricao": descricao,
            "valor": Decimal(valor),
            "data": dia,
            "data_vencimento": dia + timedelta(days=7) if status == "pendente" else None,
            "data_pagamento": dia if status == "confirmada" else None,
            "tipo": tipo,
            "categoria": categoria,
            "status": status,
            "forma_pagamento": forma,
            "observacoes": "Reposição de estoque - 50 livros" if tipo == "despesa" else None,
            "vinculo_id": vinculo,
            "vinculo_tipo": "venda" if vinculo else None,
            "comprovante": None,
            "link_venda": None,
            "referencia_externa": None,
            "created_at": utcnow(),
            "updated_at": utcnow(),
        })
    return rows


def sample_tables() -> Dict[str, List[Row]]:
    return {
        "books": sample_books(),
        "customers": sample_customers(),
        "users": [],
        "sales": [],
        "sale_items": [],
        "stock_movements": [],
        "financial_transactions": [],
    }
