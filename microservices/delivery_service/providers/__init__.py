"""Courier gateway adapters."""

from .base import CourierGateway
from .gigl import GIGLCourierGateway
from .mock import MockCourierGateway

__all__ = ["CourierGateway", "GIGLCourierGateway", "MockCourierGateway"]
