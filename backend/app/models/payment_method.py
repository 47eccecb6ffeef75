"""PaymentMethod model — local mirror of a payment method attached to a customer."""

import uuid

from sqlalchemy import Boolean, ForeignKey, String, false
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class PaymentMethod(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """An attached payment method.

    At most one row per user has ``is_default`` set. This is maintained by
    clearing every other default before setting a new one, not by a
    database constraint.
    """

    __tablename__ = "payment_methods"

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    stripe_payment_method_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    last_four: Mapped[str | None] = mapped_column(String(4), nullable=True)
    brand: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())

    def __repr__(self) -> str:
        return (
            f"<PaymentMethod(id={self.id}, stripe_payment_method_id={self.stripe_payment_method_id}, "
            f"is_default={self.is_default})>"
        )
