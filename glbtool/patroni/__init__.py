"""
Patroni: sondeo de clusters y monitor de cambio de primario
"""
