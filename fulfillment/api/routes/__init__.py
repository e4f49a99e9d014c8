# fulfillment/api/routes/__init__.py
from fulfillment.api.routes import offers, orders, payments, vouchers, wallet

__all__ = ["offers", "orders", "payments", "vouchers", "wallet"]
