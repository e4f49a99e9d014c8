# fulfillment/core/wallet/__init__.py
"""
Домен кошельков.
"""

from fulfillment.core.wallet.models import BalanceInfo, Wallet, WalletTransaction
from fulfillment.core.wallet.repository import WalletRepository
from fulfillment.core.wallet.service import WalletLedger

__all__ = [
    "BalanceInfo",
    "Wallet",
    "WalletLedger",
    "WalletRepository",
    "WalletTransaction",
]
