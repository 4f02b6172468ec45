# src/services/__init__.py
"""
HTTP-сервисы приложения.

- orders_api: заказы, завершение с удержанием комиссии и операции по балансу водителей
"""

__all__: list[str] = []
