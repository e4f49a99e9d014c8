# fulfillment/api/routes/offers.py
"""
Маршруты предложений водителей.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from fulfillment.api.dependencies import Actor, get_actor, get_offer_service
from fulfillment.api.schemas import AcceptOfferResponse, CreateOfferRequest, ErrorResponse
from fulfillment.core.offers.models import DriverOffer
from fulfillment.core.offers.service import OfferService

router = APIRouter(prefix="/offers", tags=["Offers"])


@router.post(
    "",
    response_model=DriverOffer,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def create_offer(
    request: CreateOfferRequest,
    actor: Actor = Depends(get_actor),
    service: OfferService = Depends(get_offer_service),
) -> DriverOffer:
    """Водитель предлагает цену доставки."""
    return await service.create_offer(request.order_id, request.driver_profile_id, request.proposed_fee)


@router.patch(
    "/{offer_id}/accept",
    response_model=AcceptOfferResponse,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def accept_offer(
    offer_id: int,
    actor: Actor = Depends(get_actor),
    service: OfferService = Depends(get_offer_service),
) -> AcceptOfferResponse:
    """Покупатель принимает предложение."""
    result = await service.accept_offer(offer_id, actor.user_id)
    return AcceptOfferResponse(order=result.order, offer=result.offer)
