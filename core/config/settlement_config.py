#!/usr/bin/env python3
"""Settlement business configuration

Fee policy, order numbering, courier integration and wallet concurrency
settings shared by the settlement services.
"""
import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import List, Optional

def _bool(val: str) -> bool:
    return val.lower() == "true"

def _int(val: str, default: int) -> int:
    try:
        return int(val) if val else default
    except ValueError:
        return default

def _float(val: str, default: float) -> float:
    try:
        return float(val) if val else default
    except ValueError:
        return default

def _decimal(val: str, default: str) -> Decimal:
    try:
        return Decimal(val) if val else Decimal(default)
    except InvalidOperation:
        return Decimal(default)


@dataclass
class SettlementConfig:
    """Settlement settings"""

    # ===========================================
    # Money
    # ===========================================
    currency: str = "NGN"
    platform_fee_percent: Decimal = Decimal("5")

    # ===========================================
    # Orders
    # ===========================================
    order_number_prefix: str = "ORD"
    payout_reference_prefix: str = "PAYOUT"

    # ===========================================
    # Courier gateway
    # ===========================================
    courier_provider: str = "mock"
    gigl_api_url: str = "https://api.giglogistics.com/api"
    gigl_api_key: Optional[str] = None
    courier_timeout_seconds: float = 15.0
    service_areas: List[str] = field(default_factory=lambda: ["Lagos", "Abuja", "Rivers"])

    # ===========================================
    # Delivery proofs
    # ===========================================
    delivery_proof_bucket: str = "delivery-images"

    # ===========================================
    # Wallet / escrow
    # ===========================================
    wallet_max_retries: int = 5
    escrow_auto_release_on_delivery: bool = True
    # How long a release owns an escrow before another caller may finish its credit
    escrow_release_lease_seconds: int = 120

    @classmethod
    def from_env(cls) -> 'SettlementConfig':
        """Load settlement config from environment variables"""
        areas = os.getenv("SERVICE_AREAS", "Lagos,Abuja,Rivers")
        return cls(
            currency=os.getenv("CURRENCY", "NGN"),
            platform_fee_percent=_decimal(os.getenv("PLATFORM_FEE_PERCENT", "5"), "5"),
            order_number_prefix=os.getenv("ORDER_NUMBER_PREFIX", "ORD"),
            payout_reference_prefix=os.getenv("PAYOUT_REFERENCE_PREFIX", "PAYOUT"),
            courier_provider=os.getenv("COURIER_PROVIDER", "mock").lower(),
            gigl_api_url=os.getenv("GIGL_API_URL", "https://api.giglogistics.com/api"),
            gigl_api_key=os.getenv("GIGL_API_KEY"),
            courier_timeout_seconds=_float(os.getenv("COURIER_TIMEOUT_SECONDS", "15"), 15.0),
            service_areas=[a.strip() for a in areas.split(",") if a.strip()],
            delivery_proof_bucket=os.getenv("DELIVERY_PROOF_BUCKET", "delivery-images"),
            wallet_max_retries=_int(os.getenv("WALLET_MAX_RETRIES", "5"), 5),
            escrow_auto_release_on_delivery=_bool(os.getenv("ESCROW_AUTO_RELEASE_ON_DELIVERY", "true")),
            escrow_release_lease_seconds=_int(os.getenv("ESCROW_RELEASE_LEASE_SECONDS", "120"), 120),
        )
