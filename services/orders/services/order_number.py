"""Generación de números de orden"""
import secrets
import time


def generate_order_number() -> str:
    """
    Número de orden de 12 dígitos: últimos 8 dígitos del timestamp en ms
    seguidos de 4 dígitos aleatorios.

    No es único por construcción: la unicidad la garantiza el índice único
    de orders.order_number y el reintento en OrderService.create.
    """
    timestamp = str(int(time.time() * 1000))[-8:]
    suffix = f"{secrets.randbelow(10000):04d}"
    return f"{timestamp}{suffix}"
