"""All-or-nothing bulk mutations.

Every id is checked for existence, ownership and state before anything is
written. A single failing id aborts the whole batch with a report of every
offending id.
"""
from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import BulkPreconditionFailed, InvalidTransition, LifecycleError
from ..models.application import ApplicationStatus
from ..models.billing import InvoiceStatus, PaymentStatus
from ..models.lease import LeaseStatus
from ..models.maintenance import MaintenanceStatus
from ..repositories import applications as applications_repo
from ..repositories import billing as billing_repo
from ..repositories import leases as leases_repo
from ..repositories import listings as listings_repo
from ..repositories import maintenance as maintenance_repo
from ..schemas.bulk import BulkAction, BulkEntityType, BulkMutationRequest, BulkMutationResponse
from .applications import approved_lease_ids
from .maintenance import apply_transition, check_transition
from .scope import Caller, ensure_landlord_scope, ensure_party

logger = logging.getLogger(__name__)

Write = Callable[[], None]
Plan = tuple[dict[str, str], list[Write]]
Planner = Callable[[AsyncSession, Caller, list[str], datetime], Awaitable[Plan]]

DELETABLE_MAINTENANCE = frozenset({MaintenanceStatus.OPEN, MaintenanceStatus.CANCELLED})


def _soft_delete(entity, now: datetime) -> Write:
    def write() -> None:
        entity.deleted_at = now

    return write


def _missing(ids: list[str], found: set[str], failures: dict[str, str]) -> None:
    for entity_id in ids:
        if entity_id not in found:
            failures[entity_id] = "not_found"


async def _plan_listing_delete(session: AsyncSession, caller: Caller, ids: list[str], now: datetime) -> Plan:
    listings = await listings_repo.get_many(session, ids)
    leased = await leases_repo.listings_with_active_lease(session, ids)
    failures: dict[str, str] = {}
    writes: list[Write] = []
    for listing in listings:
        try:
            ensure_landlord_scope(caller, listing.landlord_id, listing_id=listing.id)
        except LifecycleError as exc:
            failures[listing.id] = exc.reason
            continue
        if listing.id in leased:
            failures[listing.id] = "listing_has_active_lease"
            continue
        writes.append(_soft_delete(listing, now))
    _missing(ids, {listing.id for listing in listings}, failures)
    return failures, writes


async def _plan_application_delete(session: AsyncSession, caller: Caller, ids: list[str], now: datetime) -> Plan:
    applications = await applications_repo.get_many(session, ids)
    lease_ids = approved_lease_ids(applications)
    open_leases = await leases_repo.open_lease_ids(session, lease_ids) if lease_ids else set()
    failures: dict[str, str] = {}
    writes: list[Write] = []
    for application in applications:
        try:
            ensure_party(
                caller,
                landlord_id=application.landlord_id,
                tenant_id=application.tenant_id,
                application_id=application.id,
            )
        except LifecycleError as exc:
            failures[application.id] = exc.reason
            continue
        if application.status == ApplicationStatus.APPROVED and application.lease_id in open_leases:
            failures[application.id] = "application_lease_open"
            continue
        writes.append(_soft_delete(application, now))
    _missing(ids, {application.id for application in applications}, failures)
    return failures, writes


async def _plan_lease_delete(session: AsyncSession, caller: Caller, ids: list[str], now: datetime) -> Plan:
    leases = await leases_repo.get_many(session, ids)
    failures: dict[str, str] = {}
    writes: list[Write] = []
    for lease in leases:
        try:
            ensure_landlord_scope(caller, lease.landlord_id, lease_id=lease.id)
        except LifecycleError as exc:
            failures[lease.id] = exc.reason
            continue
        if lease.status != LeaseStatus.DRAFT:
            failures[lease.id] = "lease_not_draft"
            continue
        writes.append(_soft_delete(lease, now))
    _missing(ids, {lease.id for lease in leases}, failures)
    return failures, writes


async def _plan_maintenance_delete(session: AsyncSession, caller: Caller, ids: list[str], now: datetime) -> Plan:
    rows = await maintenance_repo.get_many_with_listing(session, ids)
    invoiced = await billing_repo.requests_with_live_invoice(session, [request.id for request, _ in rows])
    failures: dict[str, str] = {}
    writes: list[Write] = []
    for request, listing in rows:
        try:
            ensure_landlord_scope(caller, listing.landlord_id, maintenance_request_id=request.id)
        except LifecycleError as exc:
            failures[request.id] = exc.reason
            continue
        if request.status not in DELETABLE_MAINTENANCE:
            failures[request.id] = "maintenance_not_deletable"
            continue
        if request.id in invoiced:
            failures[request.id] = "maintenance_has_invoice"
            continue
        writes.append(_soft_delete(request, now))
    _missing(ids, {request.id for request, _ in rows}, failures)
    return failures, writes


async def _plan_maintenance_cancel(session: AsyncSession, caller: Caller, ids: list[str], now: datetime) -> Plan:
    rows = await maintenance_repo.get_many_with_listing(session, ids)
    failures: dict[str, str] = {}
    writes: list[Write] = []
    for request, listing in rows:
        try:
            check_transition(caller, request, listing, MaintenanceStatus.CANCELLED)
        except LifecycleError as exc:
            failures[request.id] = exc.reason
            continue
        writes.append(lambda request=request: apply_transition(request, MaintenanceStatus.CANCELLED, now))
    _missing(ids, {request.id for request, _ in rows}, failures)
    return failures, writes


async def _plan_invoice_cancel(session: AsyncSession, caller: Caller, ids: list[str], now: datetime) -> Plan:
    rows = await billing_repo.get_many_invoices_with_payment(session, ids)
    failures: dict[str, str] = {}
    writes: list[Write] = []
    for invoice, payment in rows:
        try:
            ensure_landlord_scope(caller, payment.landlord_id, invoice_id=invoice.id)
        except LifecycleError as exc:
            failures[invoice.id] = exc.reason
            continue
        if invoice.status != InvoiceStatus.PENDING or payment.status == PaymentStatus.PAID:
            failures[invoice.id] = "invoice_not_cancellable"
            continue

        def write(invoice=invoice, payment=payment) -> None:
            invoice.status = InvoiceStatus.CANCELLED
            payment.status = PaymentStatus.CANCELLED

        writes.append(write)
    _missing(ids, {invoice.id for invoice, _ in rows}, failures)
    return failures, writes


PLANNERS: dict[tuple[BulkEntityType, BulkAction], Planner] = {
    (BulkEntityType.LISTING, BulkAction.DELETE): _plan_listing_delete,
    (BulkEntityType.APPLICATION, BulkAction.DELETE): _plan_application_delete,
    (BulkEntityType.LEASE, BulkAction.DELETE): _plan_lease_delete,
    (BulkEntityType.MAINTENANCE_REQUEST, BulkAction.DELETE): _plan_maintenance_delete,
    (BulkEntityType.MAINTENANCE_REQUEST, BulkAction.CANCEL): _plan_maintenance_cancel,
    (BulkEntityType.INVOICE, BulkAction.CANCEL): _plan_invoice_cancel,
}


async def bulk_mutate(
    session: AsyncSession,
    caller: Caller,
    payload: BulkMutationRequest,
) -> BulkMutationResponse:
    """Apply ``payload.action`` to every id, or to none of them."""

    planner = PLANNERS.get((payload.entity_type, payload.action))
    if planner is None:
        raise InvalidTransition(
            "unsupported_bulk_action",
            current={"entity_type": payload.entity_type.value, "action": payload.action.value},
        )

    ids = list(dict.fromkeys(payload.ids))
    now = datetime.now(timezone.utc)

    async with session.begin():
        failures, writes = await planner(session, caller, ids, now)
        if failures:
            logger.info(
                "Bulk %s %s rejected: %d of %d id(s) failed",
                payload.action.value,
                payload.entity_type.value,
                len(failures),
                len(ids),
            )
            raise BulkPreconditionFailed(failures)
        for write in writes:
            write()

    logger.info("Bulk %s %s applied to %d record(s)", payload.action.value, payload.entity_type.value, len(writes))
    return BulkMutationResponse(mutated_count=len(writes))
