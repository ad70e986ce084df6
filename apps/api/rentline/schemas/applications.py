"""Schemas for rental applications."""
from __future__ import annotations

from datetime import date, datetime
import enum

from pydantic import BaseModel, ConfigDict, Field

from ..models.application import ApplicationStatus
from .leases import LeaseOut


class ReviewDecision(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"


class ApplicationCreate(BaseModel):
    listing_id: str
    move_in_date: date | None = None
    message: str | None = Field(default=None, max_length=4000)


class ApplicationReview(BaseModel):
    decision: ReviewDecision
    notes: str | None = Field(default=None, max_length=4000)


class ApplicationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    listing_id: str
    tenant_id: str
    landlord_id: str
    status: ApplicationStatus
    move_in_date: date | None = None
    message: str | None = None
    decision_notes: str | None = None
    reviewed_at: datetime | None = None
    lease_id: str | None = None
    created_at: datetime


class ReviewResult(BaseModel):
    application: ApplicationOut
    lease: LeaseOut | None = None
