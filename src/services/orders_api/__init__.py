# src/services/orders_api/__init__.py
"""
HTTP API заказов и баланса водителей.
"""
