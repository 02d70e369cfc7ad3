"""
Payout Service

Vendor withdrawals: wallet debit, bank transfer tracking and reconciliation.
"""

__version__ = "1.0.0"
