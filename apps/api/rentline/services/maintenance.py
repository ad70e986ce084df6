"""Maintenance request state machine."""
from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import InvalidTransition
from ..models.listing import Listing
from ..models.maintenance import MaintenanceCategory, MaintenancePriority, MaintenanceRequest, MaintenanceStatus
from ..repositories import leases as leases_repo
from ..repositories import listings as listings_repo
from ..repositories import maintenance as maintenance_repo
from ..schemas import maintenance as schemas
from .scope import Caller, deny, ensure_landlord_scope, is_landlord_of, scope_to_caller

logger = logging.getLogger(__name__)

# Who may perform each transition: "landlord" covers the listing owner and
# admins, "tenant" the tenant of record.
TRANSITIONS: dict[tuple[MaintenanceStatus, MaintenanceStatus], frozenset[str]] = {
    (MaintenanceStatus.OPEN, MaintenanceStatus.IN_PROGRESS): frozenset({"landlord"}),
    (MaintenanceStatus.OPEN, MaintenanceStatus.CANCELLED): frozenset({"landlord", "tenant"}),
    (MaintenanceStatus.IN_PROGRESS, MaintenanceStatus.COMPLETED): frozenset({"landlord"}),
    (MaintenanceStatus.IN_PROGRESS, MaintenanceStatus.CANCELLED): frozenset({"landlord"}),
}


def request_state(request: MaintenanceRequest) -> dict[str, str]:
    return {"id": request.id, "status": request.status.value}


def actor_for(caller: Caller, request: MaintenanceRequest, listing: Listing) -> str | None:
    """Classify the caller relative to a request."""

    if is_landlord_of(caller, listing.landlord_id):
        return "landlord"
    if caller.is_tenant and request.tenant_id is not None and caller.user_id == request.tenant_id:
        return "tenant"
    return None


def check_transition(
    caller: Caller,
    request: MaintenanceRequest,
    listing: Listing,
    target: MaintenanceStatus,
) -> None:
    """Validate ``request.status -> target`` for this caller or raise."""

    actor = actor_for(caller, request, listing)
    if actor is None:
        raise deny(caller, "not_a_party", maintenance_request_id=request.id)

    allowed = TRANSITIONS.get((request.status, target))
    if allowed is None:
        raise InvalidTransition(
            f"{request.status.value}_to_{target.value}_not_allowed", current=request_state(request)
        )
    if actor not in allowed:
        raise deny(caller, "transition_requires_landlord", maintenance_request_id=request.id)


def apply_transition(request: MaintenanceRequest, target: MaintenanceStatus, now: datetime) -> None:
    request.status = target
    request.updated_at = now
    if target is MaintenanceStatus.COMPLETED:
        request.completed_at = now


async def create_maintenance_request(
    session: AsyncSession,
    caller: Caller,
    payload: schemas.MaintenanceCreate,
) -> MaintenanceRequest:
    """Raise a new OPEN request.

    Tenants must hold an ACTIVE lease on the listing. Landlords may raise one on
    any listing they own, optionally against one of its leases.
    """

    async with session.begin():
        listing = await listings_repo.get_by_id(session, payload.listing_id)
        if listing is None or listing.deleted_at is not None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Listing not found")

        if caller.is_tenant:
            lease = await leases_repo.find_active_for_tenant(
                session, tenant_id=caller.user_id, listing_id=listing.id
            )
            if lease is None:
                raise deny(caller, "no_active_lease", listing_id=listing.id)
            lease_id, tenant_id = lease.id, caller.user_id
        else:
            ensure_landlord_scope(caller, listing.landlord_id, listing_id=listing.id)
            lease_id, tenant_id = None, None
            if payload.lease_id is not None:
                lease = await leases_repo.get_by_id(session, payload.lease_id)
                if lease is None or lease.listing_id != listing.id:
                    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lease not found")
                lease_id, tenant_id = lease.id, lease.tenant_id

        request = await maintenance_repo.create_request(
            session,
            listing_id=listing.id,
            lease_id=lease_id,
            raised_by_id=caller.user_id,
            tenant_id=tenant_id,
            title=payload.title.strip(),
            description=payload.description.strip(),
            category=payload.category,
            priority=payload.priority,
        )

    logger.info("Maintenance request %s opened on listing %s", request.id, listing.id)
    return request


async def transition_maintenance_request(
    session: AsyncSession,
    caller: Caller,
    request_id: str,
    target: MaintenanceStatus,
) -> MaintenanceRequest:
    """Apply one state transition to a maintenance request."""

    async with session.begin():
        row = await maintenance_repo.get_with_listing(session, request_id)
        if row is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Maintenance request not found")
        request, listing = row
        check_transition(caller, request, listing, target)
        apply_transition(request, target, datetime.now(timezone.utc))
        session.add(request)

    logger.info("Maintenance request %s moved to %s", request.id, target.value)
    return request


async def list_maintenance_requests(
    session: AsyncSession,
    caller: Caller,
    *,
    status_filter: MaintenanceStatus | None = None,
    priority: MaintenancePriority | None = None,
    category: MaintenanceCategory | None = None,
    listing_id: str | None = None,
) -> list[MaintenanceRequest]:
    """Return requests visible to the caller, most urgent first."""

    stmt = scope_to_caller(
        maintenance_repo.scoped_select(),
        caller,
        landlord_col=Listing.landlord_id,
        tenant_col=MaintenanceRequest.tenant_id,
    )
    async with session.begin():
        return await maintenance_repo.list_requests(
            session,
            stmt,
            status=status_filter,
            priority=priority,
            category=category,
            listing_id=listing_id,
        )
