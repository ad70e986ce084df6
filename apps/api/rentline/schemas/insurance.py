"""Schemas for insurance compliance endpoints."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
import enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..models.insurance import InsuranceStatus


class InsuranceDecision(str, enum.Enum):
    VERIFIED = "verified"
    REJECTED = "rejected"


class InsuranceCreate(BaseModel):
    lease_id: str | None = None
    provider_name: str = Field(min_length=1)
    policy_number: str = Field(min_length=1)
    coverage_amount: Decimal | None = Field(default=None, gt=0)
    start_date: date
    expiry_date: date
    document_ref: str | None = None

    @model_validator(mode="after")
    def _check_dates(self) -> "InsuranceCreate":
        if self.expiry_date <= self.start_date:
            raise ValueError("Expiry date must be after start date")
        return self


class InsuranceUpdate(BaseModel):
    provider_name: str | None = Field(default=None, min_length=1)
    policy_number: str | None = Field(default=None, min_length=1)
    coverage_amount: Decimal | None = Field(default=None, gt=0)
    start_date: date | None = None
    expiry_date: date | None = None
    document_ref: str | None = None


class InsuranceReview(BaseModel):
    decision: InsuranceDecision
    reason: str | None = Field(default=None, max_length=2000)


class InsuranceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    lease_id: str | None = None
    provider_name: str
    policy_number: str
    coverage_amount: Decimal | None = None
    start_date: date
    expiry_date: date
    status: InsuranceStatus
    document_ref: str | None = None
    verified_by_id: str | None = None
    verified_at: datetime | None = None
    rejection_reason: str | None = None
    version: int
    updated_at: datetime


class SweepReport(BaseModel):
    examined: int = 0
    updated: int = 0
    skipped_due_to_conflict: int = 0
    failed: int = 0
    completed: bool = True


class SweepRequest(BaseModel):
    now: datetime | None = None
