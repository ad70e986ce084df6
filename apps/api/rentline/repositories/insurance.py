"""Insurance repository helpers, including the sweep's compare-and-set write."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import Select, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.insurance import SWEEPABLE_STATUSES, Insurance, InsuranceStatus
from ..models.lease import Lease


@dataclass(frozen=True, slots=True)
class SweepCandidate:
    """Pre-image of a record examined by the expiry sweep."""

    id: str
    status: InsuranceStatus
    version: int
    expiry_date: date


async def get_by_id(session: AsyncSession, insurance_id: str) -> Insurance | None:
    """Return an insurance record by identifier."""

    return await session.get(Insurance, insurance_id)


async def get_landlord_id(session: AsyncSession, insurance: Insurance) -> str | None:
    """Return the landlord of the lease the record is attached to."""

    if insurance.lease_id is None:
        return None
    stmt = select(Lease.landlord_id).where(Lease.id == insurance.lease_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def create_insurance(
    session: AsyncSession,
    *,
    tenant_id: str,
    lease_id: str | None,
    provider_name: str,
    policy_number: str,
    coverage_amount: Decimal | None,
    start_date: date,
    expiry_date: date,
    document_ref: str | None,
) -> Insurance:
    """Persist a PENDING insurance record and return it."""

    insurance = Insurance(
        id=str(uuid4()),
        tenant_id=tenant_id,
        lease_id=lease_id,
        provider_name=provider_name,
        policy_number=policy_number,
        coverage_amount=coverage_amount,
        start_date=start_date,
        expiry_date=expiry_date,
        document_ref=document_ref,
        status=InsuranceStatus.PENDING,
        version=1,
    )
    session.add(insurance)
    await session.flush()
    return insurance


async def list_sweep_candidates(session: AsyncSession) -> list[SweepCandidate]:
    """Snapshot every VERIFIED or EXPIRING_SOON record."""

    stmt = (
        select(Insurance.id, Insurance.status, Insurance.version, Insurance.expiry_date)
        .where(Insurance.status.in_(SWEEPABLE_STATUSES))
        .order_by(Insurance.expiry_date.asc())
    )
    result = await session.execute(stmt)
    return [
        SweepCandidate(id=row.id, status=row.status, version=row.version, expiry_date=row.expiry_date)
        for row in result.all()
    ]


async def compare_and_set_status(
    session: AsyncSession,
    *,
    insurance_id: str,
    expected_status: InsuranceStatus,
    expected_version: int,
    new_status: InsuranceStatus,
    now: datetime,
) -> bool:
    """Write ``new_status`` only if the record still matches its pre-image.

    Returns False when another writer changed the record in between.
    """

    stmt = (
        update(Insurance)
        .where(
            Insurance.id == insurance_id,
            Insurance.status == expected_status,
            Insurance.version == expected_version,
        )
        .values(status=new_status, version=Insurance.version + 1, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.rowcount == 1


def scoped_select() -> Select[tuple[Insurance]]:
    """Base query joined to the lease so landlords can be scoped."""

    return select(Insurance).outerjoin(Lease, Lease.id == Insurance.lease_id)


async def list_insurance(
    session: AsyncSession,
    stmt: Select[tuple[Insurance]],
    *,
    status: InsuranceStatus | None = None,
) -> list[Insurance]:
    """Execute a scoped insurance query ordered by expiry."""

    if status is not None:
        stmt = stmt.where(Insurance.status == status)
    stmt = stmt.order_by(Insurance.expiry_date.asc())
    result = await session.execute(stmt)
    return list(result.scalars().all())
