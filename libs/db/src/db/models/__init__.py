"""Shared SQLAlchemy models registry for the device-local database.

Currently includes the payment table used by ``payment_sync``.
"""

from .payments import Base, PaymentRow

__all__ = [
    "Base",
    "PaymentRow",
]
