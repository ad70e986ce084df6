"""Payment endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.session import get_session
from ..models.billing import Invoice, Payment, PaymentStatus
from ..schemas import billing as billing_schema
from ..services import billing as billing_service
from ..services.scope import Caller
from .deps import get_caller

router = APIRouter()


def _pair_out(invoice: Invoice, payment: Payment) -> billing_schema.InvoicePaymentOut:
    return billing_schema.InvoicePaymentOut(
        invoice=billing_schema.InvoiceOut.model_validate(invoice),
        payment=billing_schema.PaymentOut.model_validate(payment),
    )


@router.get("", response_model=list[billing_schema.InvoicePaymentOut])
async def list_payments(
    status_filter: PaymentStatus | None = None,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_session),
) -> list[billing_schema.InvoicePaymentOut]:
    rows = await billing_service.list_payments(session, caller, status_filter=status_filter)
    return [_pair_out(invoice, payment) for invoice, payment in rows]


@router.get("/{payment_id}", response_model=billing_schema.InvoicePaymentOut)
async def get_payment(
    payment_id: str,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_session),
) -> billing_schema.InvoicePaymentOut:
    invoice, payment = await billing_service.get_payment(session, caller, payment_id)
    return _pair_out(invoice, payment)


@router.post("/{payment_id}/proof", response_model=billing_schema.PaymentOut)
async def submit_payment_proof(
    payment_id: str,
    payload: billing_schema.PaymentProof,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_session),
) -> billing_schema.PaymentOut:
    """Tenant uploads a proof reference; retrying after a failed payment is allowed."""

    payment = await billing_service.submit_payment_proof(session, caller, payment_id, payload)
    return billing_schema.PaymentOut.model_validate(payment)


@router.post("/{payment_id}/confirm", response_model=billing_schema.InvoicePaymentOut)
async def confirm_payment(
    payment_id: str,
    payload: billing_schema.PaymentConfirmation,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_session),
) -> billing_schema.InvoicePaymentOut:
    invoice, payment = await billing_service.confirm_payment(session, caller, payment_id, payload)
    return _pair_out(invoice, payment)
