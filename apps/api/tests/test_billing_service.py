"""Service-level tests for invoice/payment reconciliation."""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from rentline.core.errors import InvalidTransition, OwnershipViolation
from rentline.models.billing import InvoiceStatus, PaymentStatus
from rentline.models.maintenance import MaintenanceStatus
from rentline.models.user import UserRole
from rentline.repositories import billing as billing_repo
from rentline.repositories import leases as leases_repo
from rentline.repositories import maintenance as maintenance_repo
from rentline.schemas import billing as schemas
from rentline.services import billing as billing_service
from rentline.services.scope import Caller


class DummySession:
    """Minimal session stub supporting async transaction context."""

    def __init__(self) -> None:
        self.added: list[object] = []

    def add(self, obj: object) -> None:
        self.added.append(obj)

    def begin(self):  # noqa: D401 - mimic SQLAlchemy's async begin
        session = self

        class _Tx:
            async def __aenter__(self_inner):
                return session

            async def __aexit__(self_inner, exc_type, exc, tb):
                return False

        return _Tx()


LANDLORD = Caller(user_id="landlord-1", role=UserRole.LANDLORD)
TENANT = Caller(user_id="tenant-1", role=UserRole.TENANT)


def _pair(
    payment_status: PaymentStatus = PaymentStatus.PENDING,
    invoice_status: InvoiceStatus = InvoiceStatus.PENDING,
    proof: str | None = None,
):
    invoice = SimpleNamespace(id="inv-1", status=invoice_status)
    payment = SimpleNamespace(
        id="pay-1",
        invoice_id="inv-1",
        landlord_id="landlord-1",
        tenant_id="tenant-1",
        status=payment_status,
        proof_of_payment_ref=proof,
        proof_submitted_at=datetime.now(timezone.utc) if proof else None,
        paid_date=None,
        rejection_reason=None,
    )
    return invoice, payment


def _patch_pair(monkeypatch, invoice, payment) -> None:
    monkeypatch.setattr(billing_repo, "get_payment_with_invoice", AsyncMock(return_value=(payment, invoice)))


@pytest.mark.asyncio
async def test_paid_confirmation_marks_invoice_paid(monkeypatch):
    invoice, payment = _pair(proof="s3://proofs/1.pdf")
    _patch_pair(monkeypatch, invoice, payment)

    await billing_service.confirm_payment(
        DummySession(), LANDLORD, "pay-1", schemas.PaymentConfirmation(decision=schemas.PaymentDecision.PAID)
    )

    assert payment.status == PaymentStatus.PAID
    assert invoice.status == InvoiceStatus.PAID
    assert payment.paid_date is not None


@pytest.mark.asyncio
async def test_paid_confirmation_requires_proof(monkeypatch):
    invoice, payment = _pair()
    _patch_pair(monkeypatch, invoice, payment)

    with pytest.raises(InvalidTransition) as exc:
        await billing_service.confirm_payment(
            DummySession(), LANDLORD, "pay-1", schemas.PaymentConfirmation(decision=schemas.PaymentDecision.PAID)
        )

    assert exc.value.reason == "payment_proof_missing"
    assert payment.status == PaymentStatus.PENDING
    assert invoice.status == InvoiceStatus.PENDING


@pytest.mark.asyncio
async def test_failed_payment_can_be_retried(monkeypatch):
    invoice, payment = _pair(proof="s3://proofs/1.pdf")
    _patch_pair(monkeypatch, invoice, payment)

    await billing_service.confirm_payment(
        DummySession(),
        LANDLORD,
        "pay-1",
        schemas.PaymentConfirmation(decision=schemas.PaymentDecision.FAILED, reason="Transfer bounced"),
    )

    assert payment.status == PaymentStatus.FAILED
    assert payment.proof_of_payment_ref is None
    assert payment.rejection_reason == "Transfer bounced"
    assert invoice.status == InvoiceStatus.PENDING

    await billing_service.submit_payment_proof(
        DummySession(), TENANT, "pay-1", schemas.PaymentProof(proof_ref="s3://proofs/2.pdf")
    )

    assert payment.status == PaymentStatus.PENDING
    assert payment.proof_of_payment_ref == "s3://proofs/2.pdf"
    assert payment.rejection_reason is None


@pytest.mark.asyncio
async def test_cancelling_payment_cancels_invoice(monkeypatch):
    invoice, payment = _pair(PaymentStatus.FAILED)
    _patch_pair(monkeypatch, invoice, payment)

    await billing_service.confirm_payment(
        DummySession(), LANDLORD, "pay-1", schemas.PaymentConfirmation(decision=schemas.PaymentDecision.CANCELLED)
    )

    assert payment.status == PaymentStatus.CANCELLED
    assert invoice.status == InvoiceStatus.CANCELLED


@pytest.mark.asyncio
async def test_paid_payment_cannot_be_cancelled(monkeypatch):
    invoice, payment = _pair(PaymentStatus.PAID, InvoiceStatus.PAID, proof="s3://proofs/1.pdf")
    _patch_pair(monkeypatch, invoice, payment)

    with pytest.raises(InvalidTransition):
        await billing_service.confirm_payment(
            DummySession(),
            LANDLORD,
            "pay-1",
            schemas.PaymentConfirmation(decision=schemas.PaymentDecision.CANCELLED),
        )

    assert payment.status == PaymentStatus.PAID
    assert invoice.status == InvoiceStatus.PAID


@pytest.mark.asyncio
async def test_proof_on_paid_payment_is_rejected(monkeypatch):
    invoice, payment = _pair(PaymentStatus.PAID, InvoiceStatus.PAID, proof="s3://proofs/1.pdf")
    _patch_pair(monkeypatch, invoice, payment)

    with pytest.raises(InvalidTransition) as exc:
        await billing_service.submit_payment_proof(
            DummySession(), TENANT, "pay-1", schemas.PaymentProof(proof_ref="s3://proofs/2.pdf")
        )

    assert exc.value.reason == "payment_not_open"


@pytest.mark.asyncio
async def test_only_tenant_of_record_submits_proof(monkeypatch):
    invoice, payment = _pair()
    _patch_pair(monkeypatch, invoice, payment)
    stranger = Caller(user_id="tenant-9", role=UserRole.TENANT)

    with pytest.raises(OwnershipViolation):
        await billing_service.submit_payment_proof(
            DummySession(), stranger, "pay-1", schemas.PaymentProof(proof_ref="s3://proofs/2.pdf")
        )


def test_reconciliation_check_detects_drift():
    invoice, payment = _pair(PaymentStatus.PAID, InvoiceStatus.PENDING)

    with pytest.raises(RuntimeError):
        billing_service.check_reconciled(invoice, payment)


@pytest.mark.asyncio
async def test_issue_invoice_requires_work_started(monkeypatch):
    request = SimpleNamespace(id="mr-1", status=MaintenanceStatus.OPEN, tenant_id="tenant-1")
    listing = SimpleNamespace(id="listing-1", landlord_id="landlord-1")
    monkeypatch.setattr(maintenance_repo, "get_with_listing", AsyncMock(return_value=(request, listing)))

    with pytest.raises(InvalidTransition) as exc:
        await billing_service.issue_invoice(
            DummySession(), LANDLORD, "mr-1", schemas.InvoiceCreate(amount=Decimal("250.00"), description="Parts")
        )

    assert exc.value.reason == "maintenance_not_invoiceable"


@pytest.mark.asyncio
async def test_issue_invoice_bills_active_tenant(monkeypatch):
    request = SimpleNamespace(id="mr-1", status=MaintenanceStatus.COMPLETED, tenant_id=None)
    listing = SimpleNamespace(id="listing-1", landlord_id="landlord-1")
    invoice, payment = _pair()
    create = AsyncMock(return_value=(invoice, payment))
    monkeypatch.setattr(maintenance_repo, "get_with_listing", AsyncMock(return_value=(request, listing)))
    monkeypatch.setattr(
        leases_repo,
        "find_active_for_listing",
        AsyncMock(return_value=SimpleNamespace(tenant_id="tenant-7")),
    )
    monkeypatch.setattr(billing_repo, "create_invoice_with_payment", create)

    result = await billing_service.issue_invoice(
        DummySession(), LANDLORD, "mr-1", schemas.InvoiceCreate(amount=Decimal("250.00"), description="Parts")
    )

    assert result == (invoice, payment)
    kwargs = create.await_args.kwargs
    assert kwargs["tenant_id"] == "tenant-7"
    assert kwargs["landlord_id"] == "landlord-1"
    assert kwargs["created_by_id"] == "landlord-1"
    assert kwargs["due_date"] is not None
