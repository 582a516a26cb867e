"""
Billing domain ORM models.

Exports:
- Subscription
- Payment
- PaymentVerification
"""

from .subscription import Subscription
from .payment import Payment
from .payment_verification import PaymentVerification

__all__ = [
    "Subscription",
    "Payment",
    "PaymentVerification",
]
