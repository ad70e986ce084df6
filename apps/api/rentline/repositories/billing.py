"""Invoice and payment repository helpers."""
from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.billing import Invoice, InvoiceStatus, Payment, PaymentStatus


async def create_invoice_with_payment(
    session: AsyncSession,
    *,
    maintenance_request_id: str,
    amount: Decimal,
    description: str,
    created_by_id: str,
    landlord_id: str,
    tenant_id: str | None,
    due_date: date | None,
) -> tuple[Invoice, Payment]:
    """Persist a PENDING invoice and its PENDING payment."""

    invoice = Invoice(
        id=str(uuid4()),
        maintenance_request_id=maintenance_request_id,
        amount=amount,
        description=description,
        status=InvoiceStatus.PENDING,
        created_by_id=created_by_id,
    )
    payment = Payment(
        id=str(uuid4()),
        invoice_id=invoice.id,
        landlord_id=landlord_id,
        tenant_id=tenant_id,
        amount=amount,
        status=PaymentStatus.PENDING,
        due_date=due_date,
    )
    session.add(invoice)
    session.add(payment)
    await session.flush()
    return invoice, payment


async def get_payment_with_invoice(session: AsyncSession, payment_id: str) -> tuple[Payment, Invoice] | None:
    """Return a payment and its live invoice."""

    stmt = (
        select(Payment, Invoice)
        .join(Invoice, Invoice.id == Payment.invoice_id)
        .where(Payment.id == payment_id, Invoice.deleted_at.is_(None))
    )
    row = (await session.execute(stmt)).first()
    if row is None:
        return None
    payment, invoice = row
    return payment, invoice


def scoped_select() -> Select[tuple[Payment, Invoice]]:
    """Base payment query joined to its invoice."""

    return select(Payment, Invoice).join(Invoice, Invoice.id == Payment.invoice_id)


async def list_payments(
    session: AsyncSession,
    stmt: Select[tuple[Payment, Invoice]],
    *,
    status: PaymentStatus | None = None,
) -> list[tuple[Payment, Invoice]]:
    """Execute a scoped payment query, newest first."""

    if status is not None:
        stmt = stmt.where(Payment.status == status)
    stmt = stmt.where(Invoice.deleted_at.is_(None)).order_by(Payment.created_at.desc())
    result = await session.execute(stmt)
    return [(payment, invoice) for payment, invoice in result.all()]


async def get_many_invoices_with_payment(
    session: AsyncSession, invoice_ids: Sequence[str]
) -> list[tuple[Invoice, Payment]]:
    """Return live invoices and their payments for the given identifiers."""

    stmt = (
        select(Invoice, Payment)
        .join(Payment, Payment.invoice_id == Invoice.id)
        .where(Invoice.id.in_(invoice_ids), Invoice.deleted_at.is_(None))
    )
    result = await session.execute(stmt)
    return [(invoice, payment) for invoice, payment in result.all()]


async def requests_with_live_invoice(session: AsyncSession, request_ids: Sequence[str]) -> set[str]:
    """Return the maintenance request ids that still carry a non-cancelled invoice."""

    if not request_ids:
        return set()
    stmt = select(Invoice.maintenance_request_id).where(
        Invoice.maintenance_request_id.in_(request_ids),
        Invoice.status != InvoiceStatus.CANCELLED,
        Invoice.deleted_at.is_(None),
    )
    result = await session.execute(stmt)
    return set(result.scalars().all())
