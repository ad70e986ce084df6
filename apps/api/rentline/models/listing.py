"""Listing model."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
import enum
from typing import TYPE_CHECKING

from sqlalchemy import Date, DateTime, Enum, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, utcnow

if TYPE_CHECKING:
    from .application import Application
    from .lease import Lease


class PropertyType(str, enum.Enum):
    APARTMENT = "apartment"
    HOUSE = "house"
    CONDO = "condo"
    TOWNHOUSE = "townhouse"
    STUDIO = "studio"
    COMMERCIAL = "commercial"


class PaymentFrequency(str, enum.Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


# Shared by listings and leases so the PostgreSQL type is declared once.
payment_frequency_type = Enum(PaymentFrequency, name="payment_frequency")


class Listing(Base):
    """Rentable property published by a landlord.

    Availability is derived from applications and leases on every read and is
    never stored here.
    """

    __tablename__ = "listings"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    landlord_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), index=True, nullable=False)
    title: Mapped[str] = mapped_column(String, nullable=False)
    address: Mapped[str] = mapped_column(String, nullable=False)
    city: Mapped[str] = mapped_column(String, nullable=False)
    property_type: Mapped[PropertyType] = mapped_column(Enum(PropertyType, name="property_type"), nullable=False)
    rent_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    rent_cycle: Mapped[PaymentFrequency | None] = mapped_column(payment_frequency_type)
    security_deposit: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    available_date: Mapped[date | None] = mapped_column(Date)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    applications: Mapped[list["Application"]] = relationship("Application", back_populates="listing")
    leases: Mapped[list["Lease"]] = relationship("Lease", back_populates="listing")
