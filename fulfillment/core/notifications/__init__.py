# fulfillment/core/notifications/__init__.py
from fulfillment.core.notifications.service import NotificationData, Notifier

__all__ = ["NotificationData", "Notifier"]
