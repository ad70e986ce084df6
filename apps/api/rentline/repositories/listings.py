"""Data access helpers for listings and their availability inputs."""
from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.application import Application
from ..models.lease import Lease, LeaseStatus
from ..models.listing import Listing, PaymentFrequency, PropertyType


@dataclass(slots=True)
class AvailabilityInputs:
    """Live applications and active leases referencing one listing."""

    applications: list[Application] = field(default_factory=list)
    leases: list[Lease] = field(default_factory=list)


async def get_by_id(session: AsyncSession, listing_id: str) -> Listing | None:
    """Return a listing by identifier, including logically deleted ones."""

    return await session.get(Listing, listing_id)


async def create_listing(
    session: AsyncSession,
    *,
    landlord_id: str,
    title: str,
    address: str,
    city: str,
    property_type: PropertyType,
    rent_amount: Decimal,
    rent_cycle: PaymentFrequency | None,
    security_deposit: Decimal | None,
    available_date: date | None,
) -> Listing:
    """Persist a new listing and return it."""

    listing = Listing(
        id=str(uuid4()),
        landlord_id=landlord_id,
        title=title,
        address=address,
        city=city,
        property_type=property_type,
        rent_amount=rent_amount,
        rent_cycle=rent_cycle,
        security_deposit=security_deposit,
        available_date=available_date,
    )
    session.add(listing)
    await session.flush()
    return listing


async def search_listings(
    session: AsyncSession,
    *,
    city: str | None = None,
    property_type: PropertyType | None = None,
    rent_max: Decimal | None = None,
    landlord_id: str | None = None,
) -> list[Listing]:
    """Return non-deleted listings matching the filters, newest first."""

    stmt: Select[tuple[Listing]] = select(Listing).where(Listing.deleted_at.is_(None))
    if city:
        stmt = stmt.where(func.lower(Listing.city) == city.strip().lower())
    if property_type is not None:
        stmt = stmt.where(Listing.property_type == property_type)
    if rent_max is not None:
        stmt = stmt.where(Listing.rent_amount <= rent_max)
    if landlord_id is not None:
        stmt = stmt.where(Listing.landlord_id == landlord_id)
    stmt = stmt.order_by(Listing.created_at.desc())
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def load_availability_inputs(
    session: AsyncSession,
    listing_ids: Sequence[str],
) -> dict[str, AvailabilityInputs]:
    """Fetch live applications and active leases for the given listings."""

    inputs: dict[str, AvailabilityInputs] = defaultdict(AvailabilityInputs)
    if not listing_ids:
        return inputs

    app_stmt = select(Application).where(
        Application.listing_id.in_(listing_ids),
        Application.deleted_at.is_(None),
    )
    for application in (await session.execute(app_stmt)).scalars():
        inputs[application.listing_id].applications.append(application)

    lease_stmt = select(Lease).where(
        Lease.listing_id.in_(listing_ids),
        Lease.status == LeaseStatus.ACTIVE,
    )
    for lease in (await session.execute(lease_stmt)).scalars():
        inputs[lease.listing_id].leases.append(lease)

    return inputs


async def get_many(session: AsyncSession, listing_ids: Sequence[str]) -> list[Listing]:
    """Return non-deleted listings with the given identifiers."""

    stmt = select(Listing).where(Listing.id.in_(listing_ids), Listing.deleted_at.is_(None))
    result = await session.execute(stmt)
    return list(result.scalars().all())
