"""
Dispute Service

Investigation and resolution of order disputes; the only way escrow
leaves the disputed state.
"""

__version__ = "1.0.0"
