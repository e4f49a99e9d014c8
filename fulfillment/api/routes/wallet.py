# fulfillment/api/routes/wallet.py
"""
Маршруты кошелька.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from fulfillment.api.dependencies import Actor, get_actor, get_wallet
from fulfillment.api.schemas import ErrorResponse, TopupRequest, WithdrawRequest
from fulfillment.common.constants import WalletTransactionType
from fulfillment.common.errors import ForbiddenError
from fulfillment.core.wallet.models import BalanceInfo, WalletTransaction
from fulfillment.core.wallet.service import WalletLedger

router = APIRouter(prefix="/wallet", tags=["Wallet"])


def _ensure_owner(actor: Actor, user_id: int) -> None:
    if not actor.is_admin and actor.user_id != user_id:
        raise ForbiddenError("You can only access your own wallet")


@router.get("/{user_id}/balance", response_model=BalanceInfo, responses={403: {"model": ErrorResponse}})
async def get_balance(
    user_id: int,
    actor: Actor = Depends(get_actor),
    wallet: WalletLedger = Depends(get_wallet),
) -> BalanceInfo:
    _ensure_owner(actor, user_id)
    return await wallet.get_balance(user_id)


@router.get(
    "/{user_id}/transactions",
    response_model=list[WalletTransaction],
    responses={403: {"model": ErrorResponse}},
)
async def get_transactions(
    user_id: int,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    type: Optional[WalletTransactionType] = None,
    actor: Actor = Depends(get_actor),
    wallet: WalletLedger = Depends(get_wallet),
) -> list[WalletTransaction]:
    _ensure_owner(actor, user_id)
    return await wallet.get_transactions(user_id, limit=limit, offset=offset, tx_type=type)


@router.post(
    "/{user_id}/withdraw",
    response_model=WalletTransaction,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def withdraw(
    user_id: int,
    request: WithdrawRequest,
    actor: Actor = Depends(get_actor),
    wallet: WalletLedger = Depends(get_wallet),
) -> WalletTransaction:
    """Заявка на вывод средств."""
    _ensure_owner(actor, user_id)
    return await wallet.withdraw(user_id, request.amount, request.description)


@router.post(
    "/{user_id}/topup",
    response_model=WalletTransaction,
    status_code=201,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def topup(
    user_id: int,
    request: TopupRequest,
    actor: Actor = Depends(get_actor),
    wallet: WalletLedger = Depends(get_wallet),
) -> WalletTransaction:
    """Пополнение кошелька после подтверждённого платежа (только администратор)."""
    if not actor.is_admin:
        raise ForbiddenError("Only admins can top up wallets")
    return await wallet.topup(user_id, request.amount, request.payment_id)
