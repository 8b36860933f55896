"""
Módulo de Inventario: movimientos de stock (auditoría), ajustes y conteo físico.
"""
