"""
Dashboard: resumen de ventas, clientes, inventario y actividad reciente.
"""
