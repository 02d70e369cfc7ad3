"""
Wallet Service Events Module
"""

from .models import WalletBalanceChangedEvent
from .publishers import publish_wallet_credited, publish_wallet_debited

__all__ = [
    "WalletBalanceChangedEvent",
    "publish_wallet_credited",
    "publish_wallet_debited",
]
