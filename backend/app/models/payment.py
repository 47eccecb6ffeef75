"""Payment model — local mirror of one payment intent / refund lifecycle."""

import enum
import uuid
from decimal import Decimal

from sqlalchemy import JSON, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class PaymentStatus(str, enum.Enum):
    """Local payment states. Remote intent statuses collapse onto these."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"

    @classmethod
    def from_intent_status(cls, intent_status: str | None) -> "PaymentStatus":
        """Map a Stripe payment intent status onto the local enum."""
        if intent_status == "succeeded":
            return cls.SUCCEEDED
        if intent_status == "canceled":
            return cls.FAILED
        return cls.PENDING


class Payment(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Mirrors one Stripe payment intent. Rows are never hard-deleted."""

    __tablename__ = "payments"

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    stripe_payment_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default=PaymentStatus.PENDING.value)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)  # major units
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    payment_method_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    # "metadata" is reserved on declarative classes
    payment_metadata: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, stripe_payment_id={self.stripe_payment_id}, status={self.status})>"
