"""Maintenance request repository helpers."""
from __future__ import annotations

from collections.abc import Sequence
from uuid import uuid4

from sqlalchemy import Select, case, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.listing import Listing
from ..models.maintenance import (
    MaintenanceCategory,
    MaintenancePriority,
    MaintenanceRequest,
    MaintenanceStatus,
)

_PRIORITY_RANK = case(
    {
        MaintenancePriority.URGENT: 0,
        MaintenancePriority.HIGH: 1,
        MaintenancePriority.MEDIUM: 2,
        MaintenancePriority.LOW: 3,
    },
    value=MaintenanceRequest.priority,
)


async def get_with_listing(
    session: AsyncSession, request_id: str
) -> tuple[MaintenanceRequest, Listing] | None:
    """Return a live request together with its listing."""

    stmt = (
        select(MaintenanceRequest, Listing)
        .join(Listing, Listing.id == MaintenanceRequest.listing_id)
        .where(MaintenanceRequest.id == request_id, MaintenanceRequest.deleted_at.is_(None))
    )
    row = (await session.execute(stmt)).first()
    if row is None:
        return None
    request, listing = row
    return request, listing


async def create_request(
    session: AsyncSession,
    *,
    listing_id: str,
    lease_id: str | None,
    raised_by_id: str,
    tenant_id: str | None,
    title: str,
    description: str,
    category: MaintenanceCategory,
    priority: MaintenancePriority,
) -> MaintenanceRequest:
    """Persist an OPEN maintenance request and return it."""

    request = MaintenanceRequest(
        id=str(uuid4()),
        listing_id=listing_id,
        lease_id=lease_id,
        raised_by_id=raised_by_id,
        tenant_id=tenant_id,
        title=title,
        description=description,
        category=category,
        priority=priority,
        status=MaintenanceStatus.OPEN,
    )
    session.add(request)
    await session.flush()
    return request


def scoped_select() -> Select[tuple[MaintenanceRequest]]:
    """Base query joined to listings so callers can scope on the landlord."""

    return select(MaintenanceRequest).join(Listing, Listing.id == MaintenanceRequest.listing_id)


async def list_requests(
    session: AsyncSession,
    stmt: Select[tuple[MaintenanceRequest]],
    *,
    status: MaintenanceStatus | None = None,
    priority: MaintenancePriority | None = None,
    category: MaintenanceCategory | None = None,
    listing_id: str | None = None,
) -> list[MaintenanceRequest]:
    """Execute a scoped query ordered by priority then recency."""

    if status is not None:
        stmt = stmt.where(MaintenanceRequest.status == status)
    if priority is not None:
        stmt = stmt.where(MaintenanceRequest.priority == priority)
    if category is not None:
        stmt = stmt.where(MaintenanceRequest.category == category)
    if listing_id is not None:
        stmt = stmt.where(MaintenanceRequest.listing_id == listing_id)
    stmt = stmt.where(MaintenanceRequest.deleted_at.is_(None)).order_by(
        _PRIORITY_RANK.asc(), MaintenanceRequest.created_at.desc()
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_many_with_listing(
    session: AsyncSession, request_ids: Sequence[str]
) -> list[tuple[MaintenanceRequest, Listing]]:
    """Return live requests with their listings for the given identifiers."""

    stmt = (
        select(MaintenanceRequest, Listing)
        .join(Listing, Listing.id == MaintenanceRequest.listing_id)
        .where(MaintenanceRequest.id.in_(request_ids), MaintenanceRequest.deleted_at.is_(None))
    )
    result = await session.execute(stmt)
    return [(request, listing) for request, listing in result.all()]
