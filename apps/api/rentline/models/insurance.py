"""Tenant insurance model."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
import enum

from sqlalchemy import Date, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, utcnow


class InsuranceStatus(str, enum.Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    EXPIRING_SOON = "expiring_soon"
    EXPIRED = "expired"
    REJECTED = "rejected"


SWEEPABLE_STATUSES = frozenset({InsuranceStatus.VERIFIED, InsuranceStatus.EXPIRING_SOON})


class Insurance(Base):
    """Renter's insurance record. ``version`` is bumped on every status write."""

    __tablename__ = "insurance"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    lease_id: Mapped[str | None] = mapped_column(ForeignKey("leases.id", ondelete="SET NULL"), index=True)
    provider_name: Mapped[str] = mapped_column(String, nullable=False)
    policy_number: Mapped[str] = mapped_column(String, nullable=False)
    coverage_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    expiry_date: Mapped[date] = mapped_column(Date, index=True, nullable=False)
    status: Mapped[InsuranceStatus] = mapped_column(
        Enum(InsuranceStatus, name="insurance_status"), default=InsuranceStatus.PENDING, nullable=False
    )
    document_ref: Mapped[str | None] = mapped_column(String)
    verified_by_id: Mapped[str | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    rejection_reason: Mapped[str | None] = mapped_column(Text)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
