# fulfillment/api/routes/vouchers.py
"""
Маршруты ваучеров.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from fulfillment.api.dependencies import Actor, get_actor, get_voucher_service
from fulfillment.api.schemas import ErrorResponse, ValidateVoucherRequest, VoucherSummary
from fulfillment.core.vouchers.models import VoucherContext, VoucherQuote
from fulfillment.core.vouchers.service import VoucherService

router = APIRouter(prefix="/vouchers", tags=["Vouchers"])


@router.post(
    "/validate",
    response_model=VoucherQuote,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def validate_voucher(
    request: ValidateVoucherRequest,
    actor: Actor = Depends(get_actor),
    service: VoucherService = Depends(get_voucher_service),
) -> VoucherQuote:
    """Предварительный расчёт скидки."""
    return await service.check(
        request.code,
        VoucherContext(
            user_id=actor.user_id,
            subtotal=request.subtotal,
            item_count=request.item_count,
            merchant_id=request.merchant_id,
            category_ids=request.category_ids,
        ),
    )


@router.get("/available", response_model=list[VoucherSummary])
async def available_vouchers(
    merchant_id: Optional[int] = None,
    actor: Actor = Depends(get_actor),
    service: VoucherService = Depends(get_voucher_service),
) -> list[VoucherSummary]:
    vouchers = await service.available_for(actor.user_id, merchant_id)
    return [VoucherSummary.model_validate(voucher) for voucher in vouchers]
