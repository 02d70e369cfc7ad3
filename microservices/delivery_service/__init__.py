"""
Delivery Service

Courier shipments for orders, their status history and delivery pricing.
"""

__version__ = "1.0.0"
