"""
Shared Test Fixtures

Centralized factories and generators used across all test layers.

Structure:
    - common.py: Base ID generators, timestamps
    - settlement_fixtures.py: Order, delivery, wallet and dispute requests
"""

# Common utilities
from .common import (
    make_admin_id,
    make_buyer_id,
    make_reference,
    make_timestamp,
    make_vendor_id,
)

# Settlement fixtures
from .settlement_fixtures import (
    make_address,
    make_bank_account,
    make_delivery_request,
    make_dispute_request,
    make_order_item,
    make_order_request,
    make_parties,
    make_zone,
)

__all__ = [
    "make_admin_id",
    "make_buyer_id",
    "make_reference",
    "make_timestamp",
    "make_vendor_id",
    "make_address",
    "make_bank_account",
    "make_delivery_request",
    "make_dispute_request",
    "make_order_item",
    "make_order_request",
    "make_parties",
    "make_zone",
]
