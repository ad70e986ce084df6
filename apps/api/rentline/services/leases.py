"""Lease state machine: DRAFT -> ACTIVE -> TERMINATED, plus the signing handoff."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import settings
from ..core.errors import ConflictingActiveLease, InvalidTransition
from ..models.lease import Lease, LeaseStatus, TerminationReason
from ..models.user import UserRole
from ..repositories import leases as leases_repo
from ..repositories import listings as listings_repo
from ..repositories import users as users_repo
from ..schemas import leases as schemas
from .scope import Caller, ensure_landlord_scope, require_role, scope_to_caller
from .signing import SigningGateway

logger = logging.getLogger(__name__)


def lease_state(lease: Lease) -> dict[str, str]:
    return {"id": lease.id, "status": lease.status.value, "listing_id": lease.listing_id}


async def create_lease(session: AsyncSession, caller: Caller, payload: schemas.LeaseCreate) -> Lease:
    """Create a DRAFT lease directly, without an application."""

    require_role(caller, UserRole.LANDLORD, UserRole.ADMIN)

    async with session.begin():
        listing = await listings_repo.get_by_id(session, payload.listing_id)
        if listing is None or listing.deleted_at is not None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Listing not found")
        ensure_landlord_scope(caller, listing.landlord_id, listing_id=listing.id)

        tenant = await users_repo.get_by_id(session, payload.tenant_id)
        if tenant is None or tenant.role != UserRole.TENANT:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tenant not found")

        lease = await leases_repo.create_lease(
            session,
            listing_id=listing.id,
            tenant_id=tenant.id,
            landlord_id=listing.landlord_id,
            start_date=payload.start_date,
            end_date=payload.end_date,
            rent_amount=payload.rent_amount,
            payment_frequency=payload.payment_frequency,
            security_deposit=payload.security_deposit,
            notes=payload.notes,
        )

    logger.info("Draft lease %s created for listing %s", lease.id, listing.id)
    return lease


async def request_signing(
    session: AsyncSession,
    caller: Caller,
    lease_id: str,
    gateway: SigningGateway,
) -> schemas.SigningSessionOut:
    """Ask the e-sign service for a signing session on a DRAFT lease.

    The remote call happens between two short transactions; the lease is
    re-checked before the session reference is stored.
    """

    async with session.begin():
        lease = await _get_lease(session, lease_id)
        ensure_landlord_scope(caller, lease.landlord_id, lease_id=lease.id)
        _require_status(lease, LeaseStatus.DRAFT, "lease_not_draft")
        tenant_id, landlord_id = lease.tenant_id, lease.landlord_id

    signing = await gateway.request_session(lease_id=lease_id, tenant_id=tenant_id, landlord_id=landlord_id)

    async with session.begin():
        lease = await _get_lease(session, lease_id)
        _require_status(lease, LeaseStatus.DRAFT, "lease_not_draft")
        lease.signing_session_ref = signing.session_ref
        lease.signing_requested_at = datetime.now(timezone.utc)
        session.add(lease)

    logger.info("Signing session %s requested for lease %s", signing.session_ref, lease.id)
    return schemas.SigningSessionOut(lease=schemas.LeaseOut.model_validate(lease), signing_url=signing.signing_url)


async def confirm_signing(session: AsyncSession, lease_id: str, session_ref: str) -> Lease:
    """Handle the e-sign confirmation callback and activate the lease."""

    now = datetime.now(timezone.utc)

    async def _apply() -> Lease:
        lease = await _get_lease(session, lease_id)
        _require_status(lease, LeaseStatus.DRAFT, "lease_not_draft")
        if not lease.signing_session_ref or lease.signing_session_ref != session_ref:
            raise InvalidTransition("signing_session_mismatch", current=lease_state(lease))
        lease.signed_at = now
        await _activate(session, lease, now)
        return lease

    lease = await _guarded_activation(session, lease_id, _apply)
    logger.info("Lease %s signed and activated", lease.id)
    return lease


async def activate_lease(session: AsyncSession, caller: Caller, lease_id: str) -> Lease:
    """Move a DRAFT lease to ACTIVE.

    Fails with ConflictingActiveLease when the listing already has an ACTIVE
    lease; the partial unique index backs the check against concurrent writers.
    """

    now = datetime.now(timezone.utc)

    async def _apply() -> Lease:
        lease = await _get_lease(session, lease_id)
        ensure_landlord_scope(caller, lease.landlord_id, lease_id=lease.id)
        _require_status(lease, LeaseStatus.DRAFT, "lease_not_draft")
        await _activate(session, lease, now)
        return lease

    lease = await _guarded_activation(session, lease_id, _apply)
    logger.info("Lease %s activated", lease.id)
    return lease


async def terminate_lease(session: AsyncSession, caller: Caller, lease_id: str) -> Lease:
    """Terminate an ACTIVE lease. Its applications are left in place."""

    async with session.begin():
        lease = await _get_lease(session, lease_id)
        ensure_landlord_scope(caller, lease.landlord_id, lease_id=lease.id)
        _require_status(lease, LeaseStatus.ACTIVE, "lease_not_active")
        _terminate(lease, TerminationReason.LANDLORD_ACTION, datetime.now(timezone.utc))
        session.add(lease)

    logger.info("Lease %s terminated by %s", lease.id, caller.user_id)
    return lease


async def terminate_ended_leases(
    session_factory: async_sessionmaker[AsyncSession],
    now: datetime,
) -> int:
    """Terminate ACTIVE leases whose end date is in the past."""

    today = now.date()
    async with session_factory() as session:
        async with session.begin():
            leases = await leases_repo.list_ended_active(session, today=today)
            for lease in leases:
                _terminate(lease, TerminationReason.END_OF_TERM, now)
                session.add(lease)

    if leases:
        logger.info("End-of-term: %d lease(s) terminated", len(leases))
    return len(leases)


async def list_leases(
    session: AsyncSession,
    caller: Caller,
    *,
    status_filter: LeaseStatus | None = None,
    listing_id: str | None = None,
) -> list[Lease]:
    """Return leases visible to the caller."""

    stmt = scope_to_caller(select(Lease), caller, landlord_col=Lease.landlord_id, tenant_col=Lease.tenant_id)
    async with session.begin():
        return await leases_repo.list_leases(session, stmt, status=status_filter, listing_id=listing_id)


async def list_stalled_signings(session: AsyncSession, caller: Caller, now: datetime) -> list[Lease]:
    """DRAFT leases whose signing confirmation never arrived within the timeout."""

    require_role(caller, UserRole.LANDLORD, UserRole.ADMIN)
    cutoff = now - timedelta(hours=settings.lease_signing_timeout_hours)
    stmt = scope_to_caller(select(Lease), caller, landlord_col=Lease.landlord_id)
    async with session.begin():
        return await leases_repo.list_stalled_signings(session, stmt, requested_before=cutoff)


async def _activate(session: AsyncSession, lease: Lease, now: datetime) -> None:
    others = await leases_repo.count_other_active(session, listing_id=lease.listing_id, exclude_lease_id=lease.id)
    if others:
        raise ConflictingActiveLease("listing_has_active_lease", current=lease_state(lease))
    lease.status = LeaseStatus.ACTIVE
    lease.activated_at = now
    session.add(lease)
    await session.flush()


def _terminate(lease: Lease, reason: TerminationReason, now: datetime) -> None:
    lease.status = LeaseStatus.TERMINATED
    lease.terminated_at = now
    lease.termination_reason = reason


async def _guarded_activation(session: AsyncSession, lease_id: str, apply) -> Lease:
    try:
        async with session.begin():
            return await apply()
    except IntegrityError as exc:
        # Only the partial unique index on ACTIVE leases can fail here.
        logger.warning("Concurrent activation rejected for lease %s: %s", lease_id, exc.orig)
        async with session.begin():
            lease = await _get_lease(session, lease_id)
            current = lease_state(lease)
        raise ConflictingActiveLease("listing_has_active_lease", current=current) from exc


def _require_status(lease: Lease, expected: LeaseStatus, reason: str) -> None:
    if lease.status != expected:
        raise InvalidTransition(reason, current=lease_state(lease))


async def _get_lease(session: AsyncSession, lease_id: str) -> Lease:
    lease = await leases_repo.get_by_id(session, lease_id)
    if lease is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lease not found")
    return lease
