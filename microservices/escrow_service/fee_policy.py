"""
Platform fee policy

The platform keeps a fixed percentage of the item subtotal. Delivery fees
pass through to the vendor, so:

    platform_fee  = round_half_up(subtotal * percent / 100, 2 places)
    vendor_amount = total - platform_fee

and vendor_amount + platform_fee == total for every order.
"""

from decimal import Decimal
from typing import Tuple

from core.errors import ValidationError
from core.money import to_money


def calculate_escrow_split(subtotal: Decimal, total: Decimal, fee_percent: Decimal) -> Tuple[Decimal, Decimal]:
    """Return (vendor_amount, platform_fee) for an order"""
    if fee_percent < 0 or fee_percent > 100:
        raise ValidationError(f"Platform fee percent out of range: {fee_percent}")
    if subtotal < 0 or total < subtotal:
        raise ValidationError(f"Inconsistent order amounts: subtotal={subtotal} total={total}")

    platform_fee = to_money(Decimal(subtotal) * Decimal(fee_percent) / Decimal(100))
    vendor_amount = to_money(total) - platform_fee
    return vendor_amount, platform_fee
