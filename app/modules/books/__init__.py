"""
Módulo de Libros - catálogo de la librería

- CRUD de libros con modo dual (backend real / datos de ejemplo)
- Búsqueda por título, autor o ISBN
- Ajuste de stock por delta y alertas de stock mínimo
"""
