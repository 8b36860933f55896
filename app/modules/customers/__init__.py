"""
Módulo de Clientes

- Personas físicas (CPF) y jurídicas (CNPJ) con validación de dígitos
- Búsqueda por nombre, email o documento
- Resumen de compras por cliente
"""
