"""Application repository helpers."""
from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from uuid import uuid4

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.application import OPEN_APPLICATION_STATUSES, Application, ApplicationStatus


async def get_by_id(session: AsyncSession, application_id: str) -> Application | None:
    """Return a non-deleted application by identifier."""

    stmt = select(Application).where(Application.id == application_id, Application.deleted_at.is_(None))
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def find_open_for_pair(session: AsyncSession, *, listing_id: str, tenant_id: str) -> Application | None:
    """Return the NEW or PENDING application a tenant holds on a listing, if any."""

    stmt = (
        select(Application)
        .where(
            Application.listing_id == listing_id,
            Application.tenant_id == tenant_id,
            Application.status.in_(OPEN_APPLICATION_STATUSES),
            Application.deleted_at.is_(None),
        )
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def has_approved(session: AsyncSession, *, listing_id: str) -> bool:
    """Return True if a live application for the listing already reached APPROVED."""

    stmt: Select[tuple[int]] = select(func.count(Application.id)).where(
        Application.listing_id == listing_id,
        Application.status == ApplicationStatus.APPROVED,
        Application.deleted_at.is_(None),
    )
    count = await session.execute(stmt)
    return count.scalar_one() > 0


async def list_for_listing(session: AsyncSession, *, listing_id: str) -> list[Application]:
    """Return the live applications referencing a listing."""

    stmt = select(Application).where(Application.listing_id == listing_id, Application.deleted_at.is_(None))
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def create_application(
    session: AsyncSession,
    *,
    listing_id: str,
    tenant_id: str,
    landlord_id: str,
    move_in_date: date | None,
    message: str | None,
) -> Application:
    """Persist a NEW application and return it."""

    application = Application(
        id=str(uuid4()),
        listing_id=listing_id,
        tenant_id=tenant_id,
        landlord_id=landlord_id,
        status=ApplicationStatus.NEW,
        move_in_date=move_in_date,
        message=message,
    )
    session.add(application)
    await session.flush()
    return application


async def list_applications(
    session: AsyncSession,
    stmt: Select[tuple[Application]],
    *,
    status: ApplicationStatus | None = None,
    listing_id: str | None = None,
) -> list[Application]:
    """Execute an already scoped application query, newest first."""

    if status is not None:
        stmt = stmt.where(Application.status == status)
    if listing_id is not None:
        stmt = stmt.where(Application.listing_id == listing_id)
    stmt = stmt.where(Application.deleted_at.is_(None)).order_by(Application.created_at.desc())
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_many(session: AsyncSession, application_ids: Sequence[str]) -> list[Application]:
    """Return non-deleted applications with the given identifiers."""

    stmt = select(Application).where(Application.id.in_(application_ids), Application.deleted_at.is_(None))
    result = await session.execute(stmt)
    return list(result.scalars().all())
