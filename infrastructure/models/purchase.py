"""
Purchase table - storage shape of domain.purchase.entity.PurchaseRecord.
No business rules live here.
"""
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Text, JSON,
    Index, ForeignKey
)
from datetime import datetime, timezone

from .base import Base


class PurchaseModel(Base):
    __tablename__ = "purchases"

    id = Column(Integer, primary_key=True, index=True)

    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    provider = Column(String(20), nullable=False, comment="stripe/razorpay")
    # Session id (stripe) or order id (razorpay); NULL until the provider call returns
    provider_reference = Column(String(200), unique=True, nullable=True, comment="Provider session/order id")
    provider_payment_id = Column(String(200), nullable=True, comment="Provider payment / payment intent id")

    amount = Column(Numeric(precision=15, scale=2), nullable=False, comment="Amount in major units")
    currency = Column(String(3), nullable=False, default="INR")

    status = Column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
        comment="pending/completed/failed/refunded",
    )
    failure_reason = Column(Text, nullable=True)

    refund_reason = Column(Text, nullable=True)
    refund_amount = Column(Numeric(precision=15, scale=2), nullable=True)
    refund_external_id = Column(String(200), nullable=True, comment="Provider refund id")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    completed_at = Column(DateTime(timezone=True), nullable=True)
    # Set once the enrollment fan-out has finished for a completed purchase
    enrolled_at = Column(DateTime(timezone=True), nullable=True)

    extra_metadata = Column("metadata", JSON, nullable=True)

    __table_args__ = (
        Index("ix_purchases_user_course_status", "user_id", "course_id", "status"),
        Index("ix_purchases_status_created", "status", "created_at"),
    )

    def __repr__(self):
        return (
            f"<PurchaseModel(id={self.id}, provider='{self.provider}', "
            f"reference='{self.provider_reference}', status='{self.status}')>"
        )
