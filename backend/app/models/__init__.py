"""SQLAlchemy models for the local billing mirror.

All models are imported here so that ``Base.metadata`` knows about every
table. If you add a new model, import it in this file.
"""

from app.models.payment import Payment, PaymentStatus
from app.models.payment_method import PaymentMethod
from app.models.subscription import Subscription, SubscriptionStatus
from app.models.user import User

__all__ = [
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
    "Subscription",
    "SubscriptionStatus",
    "User",
]
