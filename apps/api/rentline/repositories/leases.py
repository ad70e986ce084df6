"""Lease repository helpers."""
from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.lease import Lease, LeaseStatus
from ..models.listing import PaymentFrequency


async def get_by_id(session: AsyncSession, lease_id: str) -> Lease | None:
    """Return a non-deleted lease by identifier."""

    stmt = select(Lease).where(Lease.id == lease_id, Lease.deleted_at.is_(None))
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def create_lease(
    session: AsyncSession,
    *,
    listing_id: str,
    tenant_id: str,
    landlord_id: str,
    start_date: date,
    end_date: date,
    rent_amount: Decimal,
    payment_frequency: PaymentFrequency,
    security_deposit: Decimal,
    application_id: str | None = None,
    notes: str | None = None,
) -> Lease:
    """Persist a DRAFT lease and return it."""

    lease = Lease(
        id=str(uuid4()),
        listing_id=listing_id,
        tenant_id=tenant_id,
        landlord_id=landlord_id,
        application_id=application_id,
        status=LeaseStatus.DRAFT,
        start_date=start_date,
        end_date=end_date,
        rent_amount=rent_amount,
        payment_frequency=payment_frequency,
        security_deposit=security_deposit,
        notes=notes,
    )
    session.add(lease)
    await session.flush()
    return lease


async def count_other_active(session: AsyncSession, *, listing_id: str, exclude_lease_id: str | None = None) -> int:
    """Count ACTIVE leases on a listing, ignoring ``exclude_lease_id``."""

    stmt: Select[tuple[int]] = select(func.count(Lease.id)).where(
        Lease.listing_id == listing_id,
        Lease.status == LeaseStatus.ACTIVE,
    )
    if exclude_lease_id is not None:
        stmt = stmt.where(Lease.id != exclude_lease_id)
    count = await session.execute(stmt)
    return count.scalar_one()


async def find_active_for_tenant(session: AsyncSession, *, tenant_id: str, listing_id: str) -> Lease | None:
    """Return the tenant's ACTIVE lease on a listing, if any."""

    stmt = select(Lease).where(
        Lease.tenant_id == tenant_id,
        Lease.listing_id == listing_id,
        Lease.status == LeaseStatus.ACTIVE,
    )
    result = await session.execute(stmt)
    return result.scalars().first()


async def find_active_for_listing(session: AsyncSession, *, listing_id: str) -> Lease | None:
    """Return the ACTIVE lease on a listing, if any."""

    stmt = select(Lease).where(Lease.listing_id == listing_id, Lease.status == LeaseStatus.ACTIVE)
    result = await session.execute(stmt)
    return result.scalars().first()


async def list_ended_active(session: AsyncSession, *, today: date) -> list[Lease]:
    """Return ACTIVE leases whose end date has passed."""

    stmt = select(Lease).where(Lease.status == LeaseStatus.ACTIVE, Lease.end_date < today)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_stalled_signings(
    session: AsyncSession,
    stmt: Select[tuple[Lease]],
    *,
    requested_before: datetime,
) -> list[Lease]:
    """Return DRAFT leases whose signing request is older than the cutoff."""

    stmt = stmt.where(
        Lease.status == LeaseStatus.DRAFT,
        Lease.deleted_at.is_(None),
        Lease.signing_requested_at.is_not(None),
        Lease.signing_requested_at < requested_before,
    ).order_by(Lease.signing_requested_at.asc())
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_leases(
    session: AsyncSession,
    stmt: Select[tuple[Lease]],
    *,
    status: LeaseStatus | None = None,
    listing_id: str | None = None,
) -> list[Lease]:
    """Execute an already scoped lease query, newest first."""

    if status is not None:
        stmt = stmt.where(Lease.status == status)
    if listing_id is not None:
        stmt = stmt.where(Lease.listing_id == listing_id)
    stmt = stmt.where(Lease.deleted_at.is_(None)).order_by(Lease.created_at.desc())
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_many(session: AsyncSession, lease_ids: Sequence[str]) -> list[Lease]:
    """Return non-deleted leases with the given identifiers."""

    stmt = select(Lease).where(Lease.id.in_(lease_ids), Lease.deleted_at.is_(None))
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def listings_with_active_lease(session: AsyncSession, listing_ids: Sequence[str]) -> set[str]:
    """Return the subset of listing ids that currently have an ACTIVE lease."""

    stmt = select(Lease.listing_id).where(Lease.listing_id.in_(listing_ids), Lease.status == LeaseStatus.ACTIVE)
    result = await session.execute(stmt)
    return set(result.scalars().all())


async def open_lease_ids(session: AsyncSession, lease_ids: Sequence[str]) -> set[str]:
    """Return the subset of lease ids still DRAFT or ACTIVE and not deleted."""

    if not lease_ids:
        return set()
    stmt = select(Lease.id).where(
        Lease.id.in_(lease_ids),
        Lease.status.in_((LeaseStatus.DRAFT, LeaseStatus.ACTIVE)),
        Lease.deleted_at.is_(None),
    )
    result = await session.execute(stmt)
    return set(result.scalars().all())
