"""Rental application model."""
from __future__ import annotations

from datetime import date, datetime
import enum
from typing import TYPE_CHECKING

from sqlalchemy import Date, DateTime, Enum, ForeignKey, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, utcnow

if TYPE_CHECKING:
    from .listing import Listing


class ApplicationStatus(str, enum.Enum):
    NEW = "new"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


OPEN_APPLICATION_STATUSES = frozenset({ApplicationStatus.NEW, ApplicationStatus.PENDING})


class Application(Base):
    """Tenant request to rent a listing."""

    __tablename__ = "applications"
    __table_args__ = (
        # A listing holds at most one live APPROVED application.
        Index(
            "uq_applications_listing_approved",
            "listing_id",
            unique=True,
            postgresql_where=text("status = 'APPROVED' AND deleted_at IS NULL"),
            sqlite_where=text("status = 'APPROVED' AND deleted_at IS NULL"),
        ),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    listing_id: Mapped[str] = mapped_column(ForeignKey("listings.id", ondelete="CASCADE"), index=True, nullable=False)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    landlord_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    status: Mapped[ApplicationStatus] = mapped_column(
        Enum(ApplicationStatus, name="application_status"), default=ApplicationStatus.NEW, nullable=False
    )
    move_in_date: Mapped[date | None] = mapped_column(Date)
    message: Mapped[str | None] = mapped_column(Text)
    decision_notes: Mapped[str | None] = mapped_column(Text)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    lease_id: Mapped[str | None] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    listing: Mapped["Listing"] = relationship("Listing", back_populates="applications")
