"""Invoice and payment reconciliation.

An invoice and its payment always move together: an invoice is PAID exactly
when its payment is PAID. Every operation that touches a payment writes both
rows in one transaction and re-checks that invariant before committing.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.errors import InvalidTransition
from ..models.billing import Invoice, InvoiceStatus, Payment, PaymentStatus
from ..models.maintenance import MaintenanceStatus
from ..repositories import billing as billing_repo
from ..repositories import leases as leases_repo
from ..repositories import maintenance as maintenance_repo
from ..schemas import billing as schemas
from .scope import Caller, ensure_landlord_scope, ensure_party, ensure_tenant_of_record, scope_to_caller

logger = logging.getLogger(__name__)

INVOICEABLE_STATUSES = frozenset({MaintenanceStatus.IN_PROGRESS, MaintenanceStatus.COMPLETED})


def payment_state(payment: Payment, invoice: Invoice) -> dict[str, str]:
    return {
        "id": payment.id,
        "status": payment.status.value,
        "invoice_id": invoice.id,
        "invoice_status": invoice.status.value,
    }


def check_reconciled(invoice: Invoice, payment: Payment) -> None:
    """Raise if the pair disagrees on whether it has been paid."""

    if (invoice.status == InvoiceStatus.PAID) != (payment.status == PaymentStatus.PAID):
        raise RuntimeError(
            f"Invoice {invoice.id} ({invoice.status.value}) and payment {payment.id} "
            f"({payment.status.value}) are out of sync"
        )


async def issue_invoice(
    session: AsyncSession,
    caller: Caller,
    request_id: str,
    payload: schemas.InvoiceCreate,
) -> tuple[Invoice, Payment]:
    """Bill a maintenance request that is in progress or completed."""

    now = datetime.now(timezone.utc)

    async with session.begin():
        row = await maintenance_repo.get_with_listing(session, request_id)
        if row is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Maintenance request not found")
        request, listing = row
        ensure_landlord_scope(caller, listing.landlord_id, maintenance_request_id=request.id)
        if request.status not in INVOICEABLE_STATUSES:
            raise InvalidTransition(
                "maintenance_not_invoiceable", current={"id": request.id, "status": request.status.value}
            )

        tenant_id = request.tenant_id
        if tenant_id is None:
            lease = await leases_repo.find_active_for_listing(session, listing_id=listing.id)
            tenant_id = lease.tenant_id if lease is not None else None

        invoice, payment = await billing_repo.create_invoice_with_payment(
            session,
            maintenance_request_id=request.id,
            amount=payload.amount,
            description=payload.description.strip(),
            created_by_id=caller.user_id,
            landlord_id=listing.landlord_id,
            tenant_id=tenant_id,
            due_date=(now + timedelta(days=settings.payment_due_days)).date(),
        )
        check_reconciled(invoice, payment)

    logger.info("Invoice %s issued for maintenance request %s", invoice.id, request.id)
    return invoice, payment


async def submit_payment_proof(
    session: AsyncSession,
    caller: Caller,
    payment_id: str,
    payload: schemas.PaymentProof,
) -> Payment:
    """Attach proof of payment. A FAILED payment returns to PENDING."""

    async with session.begin():
        payment, invoice = await _get_pair(session, payment_id)
        ensure_tenant_of_record(caller, payment.tenant_id, payment_id=payment.id)
        if payment.status not in (PaymentStatus.PENDING, PaymentStatus.FAILED):
            raise InvalidTransition("payment_not_open", current=payment_state(payment, invoice))

        payment.proof_of_payment_ref = payload.proof_ref
        payment.proof_submitted_at = datetime.now(timezone.utc)
        payment.rejection_reason = None
        payment.status = PaymentStatus.PENDING
        check_reconciled(invoice, payment)
        session.add(payment)

    logger.info("Proof submitted for payment %s", payment.id)
    return payment


async def confirm_payment(
    session: AsyncSession,
    caller: Caller,
    payment_id: str,
    payload: schemas.PaymentConfirmation,
) -> tuple[Invoice, Payment]:
    """Landlord decision on a payment: PAID, FAILED or CANCELLED."""

    now = datetime.now(timezone.utc)

    async with session.begin():
        payment, invoice = await _get_pair(session, payment_id)
        ensure_landlord_scope(caller, payment.landlord_id, payment_id=payment.id)
        current = payment_state(payment, invoice)

        if payload.decision is schemas.PaymentDecision.PAID:
            _require_proof(payment, current)
            payment.status = PaymentStatus.PAID
            payment.paid_date = now
            invoice.status = InvoiceStatus.PAID
        elif payload.decision is schemas.PaymentDecision.FAILED:
            _require_proof(payment, current)
            payment.status = PaymentStatus.FAILED
            payment.proof_of_payment_ref = None
            payment.proof_submitted_at = None
            payment.rejection_reason = payload.reason
        else:
            if payment.status not in (PaymentStatus.PENDING, PaymentStatus.FAILED):
                raise InvalidTransition("payment_not_cancellable", current=current)
            payment.status = PaymentStatus.CANCELLED
            payment.rejection_reason = payload.reason
            invoice.status = InvoiceStatus.CANCELLED

        check_reconciled(invoice, payment)
        session.add(payment)
        session.add(invoice)

    logger.info("Payment %s confirmed as %s", payment.id, payment.status.value)
    return invoice, payment


async def get_payment(session: AsyncSession, caller: Caller, payment_id: str) -> tuple[Invoice, Payment]:
    async with session.begin():
        payment, invoice = await _get_pair(session, payment_id)
        ensure_party(caller, landlord_id=payment.landlord_id, tenant_id=payment.tenant_id, payment_id=payment.id)
    return invoice, payment


async def list_payments(
    session: AsyncSession,
    caller: Caller,
    *,
    status_filter: PaymentStatus | None = None,
) -> list[tuple[Invoice, Payment]]:
    """Return payments visible to the caller with their invoices."""

    stmt = scope_to_caller(
        billing_repo.scoped_select(),
        caller,
        landlord_col=Payment.landlord_id,
        tenant_col=Payment.tenant_id,
    )
    async with session.begin():
        rows = await billing_repo.list_payments(session, stmt, status=status_filter)
    return [(invoice, payment) for payment, invoice in rows]


def _require_proof(payment: Payment, current: dict[str, str]) -> None:
    if payment.status != PaymentStatus.PENDING:
        raise InvalidTransition("payment_not_pending", current=current)
    if not payment.proof_of_payment_ref:
        raise InvalidTransition("payment_proof_missing", current=current)


async def _get_pair(session: AsyncSession, payment_id: str) -> tuple[Payment, Invoice]:
    row = await billing_repo.get_payment_with_invoice(session, payment_id)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found")
    return row
