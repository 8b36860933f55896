"""
Ventas: finalización en el punto de venta, cambios de estado y reconciliación
con el libro financiero.
"""
