"""
Caddy: resolución de rutas, políticas de balanceo y conmutación vía API de administración
"""
