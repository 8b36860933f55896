"""
Módulo de Reportes

No crea tablas: agrega ventas, líneas, libros, clientes y transacciones
existentes sobre un período.

- Ventas: total, ítems, ticket medio, clientes, por categoría y por día
- Inventario: unidades, valor a costo, stock bajo, libros más vendidos
- Financiero: receitas, despesas, lucro, margen y lucro por mes
- Clientes: nuevos, activos, mejores clientes y distribución por estado
- Exportación CSV de la tabla principal de cada reporte
"""
