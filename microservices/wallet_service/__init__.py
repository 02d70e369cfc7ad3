"""
Wallet Service

Vendor wallet aggregate: balance changes with a matching ledger entry.
"""

__version__ = "1.0.0"
