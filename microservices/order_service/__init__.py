"""
Order Service

Order creation with line-item snapshots and the order status state machine.
"""

__version__ = "1.0.0"
