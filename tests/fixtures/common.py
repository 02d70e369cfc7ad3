"""
Common/Shared Fixtures

Base ID generators used across the settlement tests.
"""
import uuid
from datetime import datetime, timezone


def make_buyer_id() -> str:
    """Generate a unique buyer ID"""
    return f"buyer_test_{uuid.uuid4().hex[:12]}"


def make_vendor_id() -> str:
    """Generate a unique vendor ID"""
    return f"vendor_test_{uuid.uuid4().hex[:12]}"


def make_admin_id() -> str:
    return f"admin_test_{uuid.uuid4().hex[:8]}"


def make_reference(prefix: str = "PAY") -> str:
    """Generate a unique payment reference"""
    return f"{prefix}-{uuid.uuid4().hex[:10].upper()}"


def make_timestamp() -> str:
    """Generate current UTC timestamp"""
    return datetime.now(timezone.utc).isoformat()
