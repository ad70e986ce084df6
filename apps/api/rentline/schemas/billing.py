"""Schemas for invoices and payments."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
import enum

from pydantic import BaseModel, ConfigDict, Field

from ..models.billing import InvoiceStatus, PaymentStatus


class PaymentDecision(str, enum.Enum):
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"


class InvoiceCreate(BaseModel):
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    description: str = Field(min_length=1, max_length=2000)


class PaymentProof(BaseModel):
    proof_ref: str = Field(min_length=1, description="Opaque file-storage key or URL")


class PaymentConfirmation(BaseModel):
    decision: PaymentDecision
    reason: str | None = Field(default=None, max_length=2000)


class InvoiceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    maintenance_request_id: str
    amount: Decimal
    description: str
    status: InvoiceStatus
    created_by_id: str
    created_at: datetime


class PaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    invoice_id: str
    landlord_id: str
    tenant_id: str | None = None
    amount: Decimal
    status: PaymentStatus
    proof_of_payment_ref: str | None = None
    proof_submitted_at: datetime | None = None
    paid_date: datetime | None = None
    due_date: date | None = None
    rejection_reason: str | None = None
    created_at: datetime


class InvoicePaymentOut(BaseModel):
    invoice: InvoiceOut
    payment: PaymentOut
