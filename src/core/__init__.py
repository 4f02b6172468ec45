# src/core/__init__.py
"""
Доменный слой: тарифы, расчёт стоимости, заказы, баланс водителей
и согласованное завершение заказа с удержанием комиссии.
"""
