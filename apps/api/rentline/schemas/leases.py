"""Schemas for lease endpoints."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..models.lease import LeaseStatus, TerminationReason
from ..models.listing import PaymentFrequency


class LeaseCreate(BaseModel):
    listing_id: str
    tenant_id: str
    start_date: date
    end_date: date
    rent_amount: Decimal = Field(gt=0)
    payment_frequency: PaymentFrequency = PaymentFrequency.MONTHLY
    security_deposit: Decimal = Field(default=Decimal("0"), ge=0)
    notes: str | None = None

    @model_validator(mode="after")
    def _check_term(self) -> "LeaseCreate":
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class LeaseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    listing_id: str
    tenant_id: str
    landlord_id: str
    application_id: str | None = None
    status: LeaseStatus
    start_date: date
    end_date: date
    rent_amount: Decimal
    payment_frequency: PaymentFrequency
    security_deposit: Decimal
    signing_session_ref: str | None = None
    signing_requested_at: datetime | None = None
    signed_at: datetime | None = None
    activated_at: datetime | None = None
    terminated_at: datetime | None = None
    termination_reason: TerminationReason | None = None
    notes: str | None = None
    created_at: datetime


class SigningSessionOut(BaseModel):
    lease: LeaseOut
    signing_url: str | None = None


class SigningConfirmation(BaseModel):
    session_ref: str = Field(min_length=1)
