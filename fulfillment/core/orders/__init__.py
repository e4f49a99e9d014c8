# fulfillment/core/orders/__init__.py
"""
Домен заказов.
"""

from fulfillment.core.orders.models import (
    CancelResult,
    CreateOrderDTO,
    CreateOrderItemDTO,
    Order,
    OrderItem,
    OrderStatusHistory,
)
from fulfillment.core.orders.repository import OrderRepository
from fulfillment.core.orders.service import OrderService, generate_order_number
from fulfillment.core.orders.state_machine import (
    TRANSITIONS,
    OrderStateMachine,
    can_transition,
)

__all__ = [
    "CancelResult",
    "CreateOrderDTO",
    "CreateOrderItemDTO",
    "Order",
    "OrderItem",
    "OrderRepository",
    "OrderService",
    "OrderStateMachine",
    "OrderStatusHistory",
    "TRANSITIONS",
    "can_transition",
    "generate_order_number",
]
