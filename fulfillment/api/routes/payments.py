# fulfillment/api/routes/payments.py
"""
Приём уведомлений платёжного шлюза.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from fulfillment.api.dependencies import get_payment_service
from fulfillment.common.logger import log_error
from fulfillment.core.payments.models import GatewayNotification
from fulfillment.core.payments.service import PaymentService

router = APIRouter(prefix="/payment", tags=["Payments"])


@router.post("/webhook")
async def payment_webhook(
    request: Request,
    service: PaymentService = Depends(get_payment_service),
) -> dict:
    """
    Шлюз повторяет доставку при любом ответе кроме 200,
    поэтому ошибки только логируются.
    """
    try:
        notification = GatewayNotification.model_validate(await request.json())
        result = await service.handle_notification(notification)
        return {"status": "ok", "processed": result.processed, "message": result.message}
    except Exception as e:
        await log_error(f"Ошибка обработки уведомления оплаты: {e}", exc_info=True)
        return {"status": "ok", "processed": False}
