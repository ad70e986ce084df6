"""Schemas for listing endpoints."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from ..models.listing import PaymentFrequency, PropertyType


class ListingCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    address: str = Field(min_length=1)
    city: str = Field(min_length=1)
    property_type: PropertyType
    rent_amount: Decimal = Field(gt=0)
    rent_cycle: PaymentFrequency | None = None
    security_deposit: Decimal | None = Field(default=None, ge=0)
    available_date: date | None = None


class ListingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    landlord_id: str
    title: str
    address: str
    city: str
    property_type: PropertyType
    rent_amount: Decimal
    rent_cycle: PaymentFrequency | None = None
    security_deposit: Decimal | None = None
    available_date: date | None = None
    created_at: datetime
    is_available: bool

    @classmethod
    def from_listing(cls, listing: object, *, is_available: bool) -> "ListingOut":
        """Build the read model; availability is computed by the caller."""

        fields = {name: getattr(listing, name) for name in cls.model_fields if name != "is_available"}
        return cls(**fields, is_available=is_available)


class ListingFilters(BaseModel):
    city: str | None = None
    property_type: PropertyType | None = None
    rent_max: Decimal | None = Field(default=None, gt=0)


class ReopenResponse(BaseModel):
    listing: ListingOut
    cleared_applications: int
