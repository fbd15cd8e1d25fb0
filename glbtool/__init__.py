"""
GLB Tool - Conmutador de políticas de balanceo para Caddy
Sigue al primario de clusters Patroni y reconfigura los proxies.
"""

__version__ = "2.0.0"
