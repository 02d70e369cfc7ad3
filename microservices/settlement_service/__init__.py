"""
Settlement Service

FastAPI application composing the order, escrow, wallet, delivery, payout
and dispute services over one ledger store.
"""

__version__ = "1.0.0"
