"""Maintenance request endpoints and invoice issuance."""
from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.session import get_session
from ..models.maintenance import MaintenanceCategory, MaintenancePriority, MaintenanceStatus
from ..schemas import billing as billing_schema
from ..schemas import maintenance as maintenance_schema
from ..services import billing as billing_service
from ..services import maintenance as maintenance_service
from ..services.scope import Caller
from .deps import get_caller

router = APIRouter()


@router.post("", response_model=maintenance_schema.MaintenanceOut, status_code=status.HTTP_201_CREATED)
async def create_maintenance_request(
    payload: maintenance_schema.MaintenanceCreate,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_session),
) -> maintenance_schema.MaintenanceOut:
    request = await maintenance_service.create_maintenance_request(session, caller, payload)
    return maintenance_schema.MaintenanceOut.model_validate(request)


@router.get("", response_model=list[maintenance_schema.MaintenanceOut])
async def list_maintenance_requests(
    status_filter: MaintenanceStatus | None = None,
    priority: MaintenancePriority | None = None,
    category: MaintenanceCategory | None = None,
    listing_id: str | None = None,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_session),
) -> list[maintenance_schema.MaintenanceOut]:
    """Requests visible to the caller, most urgent first."""

    requests = await maintenance_service.list_maintenance_requests(
        session,
        caller,
        status_filter=status_filter,
        priority=priority,
        category=category,
        listing_id=listing_id,
    )
    return [maintenance_schema.MaintenanceOut.model_validate(item) for item in requests]


@router.post("/{request_id}/transition", response_model=maintenance_schema.MaintenanceOut)
async def transition_maintenance_request(
    request_id: str,
    payload: maintenance_schema.MaintenanceTransition,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_session),
) -> maintenance_schema.MaintenanceOut:
    request = await maintenance_service.transition_maintenance_request(session, caller, request_id, payload.target)
    return maintenance_schema.MaintenanceOut.model_validate(request)


@router.post(
    "/{request_id}/invoices",
    response_model=billing_schema.InvoicePaymentOut,
    status_code=status.HTTP_201_CREATED,
)
async def issue_invoice(
    request_id: str,
    payload: billing_schema.InvoiceCreate,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_session),
) -> billing_schema.InvoicePaymentOut:
    """Bill the work on a request; creates the invoice and its pending payment."""

    invoice, payment = await billing_service.issue_invoice(session, caller, request_id, payload)
    return billing_schema.InvoicePaymentOut(
        invoice=billing_schema.InvoiceOut.model_validate(invoice),
        payment=billing_schema.PaymentOut.model_validate(payment),
    )
