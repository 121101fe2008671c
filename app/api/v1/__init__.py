# API v1 routers
# This file ensures all routers are properly exported

from . import (
    availability,
    booking,
    payments
)

__all__ = [
    "availability",
    "booking",
    "payments"
]
