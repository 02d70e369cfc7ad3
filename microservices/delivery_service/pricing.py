"""Fallback delivery tariff used when the courier cannot quote."""

from decimal import Decimal

from core.money import round_to_unit
from microservices.order_service.models import DeliveryType

from .models import DeliveryZone

SAME_DAY_FACTOR = Decimal("1.5")


def zone_delivery_cost(zone: DeliveryZone, weight_kg: Decimal, delivery_type: DeliveryType) -> Decimal:
    """
    base_rate + per_kg_rate * weight, scaled by the zone's express
    multiplier (same-day pays a further 1.5x), rounded half up to a whole
    currency unit.
    """
    cost = zone.base_rate + zone.per_kg_rate * Decimal(str(weight_kg))
    if delivery_type == DeliveryType.EXPRESS:
        cost *= zone.express_multiplier
    elif delivery_type == DeliveryType.SAME_DAY:
        cost *= zone.express_multiplier * SAME_DAY_FACTOR
    return round_to_unit(cost)
