"""
Escrow Service

Holds buyer payments per order and settles them once: released to the
vendor wallet or refunded to the buyer. Files disputes.
"""

__version__ = "1.0.0"
