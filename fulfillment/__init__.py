# fulfillment/__init__.py
"""
Ядро выполнения заказов доставки.
"""

__version__ = "0.1.0"
