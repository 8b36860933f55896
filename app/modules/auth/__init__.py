"""
Autenticación: login con JWT, sesión por petición y eventos de sesión.
"""
