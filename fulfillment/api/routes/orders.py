# fulfillment/api/routes/orders.py
"""
Маршруты заказов.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from fulfillment.api.dependencies import Actor, get_actor, get_offer_service, get_order_service
from fulfillment.api.schemas import (
    AssignDriverRequest,
    CancelOrderRequest,
    CancelOrderResponse,
    ErrorResponse,
    UpdateStatusRequest,
)
from fulfillment.common.errors import ForbiddenError
from fulfillment.core.offers.models import DriverOffer
from fulfillment.core.offers.service import OfferService
from fulfillment.core.orders.models import CreateOrderDTO, Order, OrderStatusHistory
from fulfillment.core.orders.service import OrderService

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post(
    "",
    response_model=Order,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def create_order(
    request: CreateOrderDTO,
    actor: Actor = Depends(get_actor),
    service: OrderService = Depends(get_order_service),
) -> Order:
    """Оформление заказа текущим пользователем."""
    return await service.create_order(actor.user_id, request)


@router.get("/{order_id}", response_model=Order, responses={404: {"model": ErrorResponse}})
async def get_order(order_id: int, service: OrderService = Depends(get_order_service)) -> Order:
    return await service.get_order(order_id)


@router.get(
    "/{order_id}/history",
    response_model=list[OrderStatusHistory],
    responses={404: {"model": ErrorResponse}},
)
async def get_history(order_id: int, service: OrderService = Depends(get_order_service)) -> list[OrderStatusHistory]:
    return await service.get_history(order_id)


@router.patch(
    "/{order_id}/status",
    response_model=Order,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def update_status(
    order_id: int,
    request: UpdateStatusRequest,
    actor: Actor = Depends(get_actor),
    service: OrderService = Depends(get_order_service),
) -> Order:
    """Переход статуса заказа."""
    return await service.update_status(order_id, request.status, actor.user_id, request.note, is_admin=actor.is_admin)


@router.patch(
    "/{order_id}/assign-driver",
    response_model=Order,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def assign_driver(
    order_id: int,
    request: AssignDriverRequest,
    actor: Actor = Depends(get_actor),
    service: OfferService = Depends(get_offer_service),
) -> Order:
    """Назначение водителя администратором."""
    if not actor.is_admin:
        raise ForbiddenError("Only administrators can assign drivers")
    return await service.assign_driver(order_id, request.driver_id, actor.user_id, request.reason)


@router.patch(
    "/{order_id}/cancel",
    response_model=CancelOrderResponse,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def cancel_order(
    order_id: int,
    request: CancelOrderRequest,
    actor: Actor = Depends(get_actor),
    service: OrderService = Depends(get_order_service),
) -> CancelOrderResponse:
    result = await service.cancel_order(
        order_id,
        actor.user_id,
        request.reason,
        refund_amount=request.refund_amount,
        refund_to_wallet=request.refund_to_wallet,
        is_admin=actor.is_admin,
    )
    return CancelOrderResponse(order=result.order, refunded_amount=result.refunded_amount)


@router.get("/{order_id}/offers", response_model=list[DriverOffer], responses={404: {"model": ErrorResponse}})
async def list_offers(order_id: int, service: OfferService = Depends(get_offer_service)) -> list[DriverOffer]:
    return await service.list_offers(order_id)
