# fulfillment/core/__init__.py
"""
Доменные сервисы доставки.
"""
