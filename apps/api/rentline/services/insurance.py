"""Insurance compliance: submission, review and the daily expiry sweep."""
from __future__ import annotations

import asyncio
import logging
import time
from datetime import date, datetime, timezone

from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import settings
from ..core.errors import InvalidTransition, OptimisticConflict
from ..models.insurance import Insurance, InsuranceStatus
from ..models.lease import Lease
from ..models.user import UserRole
from ..repositories import insurance as insurance_repo
from ..repositories import leases as leases_repo
from ..schemas import insurance as schemas
from .scope import Caller, deny, ensure_tenant_of_record, is_landlord_of, require_role, scope_to_caller

logger = logging.getLogger(__name__)

AMENDABLE_STATUSES = frozenset({InsuranceStatus.PENDING, InsuranceStatus.REJECTED})

# The sweep never moves a record back down this order.
SWEEP_RANK = {
    InsuranceStatus.VERIFIED: 0,
    InsuranceStatus.EXPIRING_SOON: 1,
    InsuranceStatus.EXPIRED: 2,
}

_sweep_lock = asyncio.Lock()


def insurance_state(insurance: Insurance) -> dict[str, object]:
    return {"id": insurance.id, "status": insurance.status.value, "version": insurance.version}


def compute_status(expiry_date: date, now: datetime, window_days: int = 30) -> InsuranceStatus:
    """Status a verified policy should have at ``now``."""

    days_left = (expiry_date - now.date()).days
    if days_left <= 0:
        return InsuranceStatus.EXPIRED
    if days_left <= window_days:
        return InsuranceStatus.EXPIRING_SOON
    return InsuranceStatus.VERIFIED


async def submit_insurance(
    session: AsyncSession,
    caller: Caller,
    payload: schemas.InsuranceCreate,
) -> Insurance:
    """Record a tenant's policy for landlord review."""

    require_role(caller, UserRole.TENANT)

    async with session.begin():
        if payload.lease_id is not None:
            lease = await leases_repo.get_by_id(session, payload.lease_id)
            if lease is None:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lease not found")
            ensure_tenant_of_record(caller, lease.tenant_id, lease_id=lease.id)

        insurance = await insurance_repo.create_insurance(
            session,
            tenant_id=caller.user_id,
            lease_id=payload.lease_id,
            provider_name=payload.provider_name.strip(),
            policy_number=payload.policy_number.strip(),
            coverage_amount=payload.coverage_amount,
            start_date=payload.start_date,
            expiry_date=payload.expiry_date,
            document_ref=payload.document_ref,
        )

    logger.info("Insurance %s submitted by tenant %s", insurance.id, caller.user_id)
    return insurance


async def update_insurance(
    session: AsyncSession,
    caller: Caller,
    insurance_id: str,
    payload: schemas.InsuranceUpdate,
) -> Insurance:
    """Amend a PENDING or REJECTED policy; it goes back to PENDING."""

    async with session.begin():
        insurance = await _get_insurance(session, insurance_id)
        ensure_tenant_of_record(caller, insurance.tenant_id, insurance_id=insurance.id)
        if insurance.status not in AMENDABLE_STATUSES:
            raise InvalidTransition("insurance_not_amendable", current=insurance_state(insurance))

        changes = payload.model_dump(exclude_unset=True)
        start = changes.get("start_date", insurance.start_date)
        expiry = changes.get("expiry_date", insurance.expiry_date)
        if expiry <= start:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="Expiry date must be after start date",
            )

        for field, value in changes.items():
            setattr(insurance, field, value)
        insurance.status = InsuranceStatus.PENDING
        insurance.rejection_reason = None
        insurance.version += 1
        insurance.updated_at = datetime.now(timezone.utc)
        session.add(insurance)

    return insurance


async def review_insurance(
    session: AsyncSession,
    caller: Caller,
    insurance_id: str,
    payload: schemas.InsuranceReview,
) -> Insurance:
    """Verify or reject a PENDING policy."""

    now = datetime.now(timezone.utc)

    async with session.begin():
        insurance = await _get_insurance(session, insurance_id)
        landlord_id = await insurance_repo.get_landlord_id(session, insurance)
        if not (caller.is_admin or (landlord_id is not None and is_landlord_of(caller, landlord_id))):
            raise deny(caller, "not_owner", insurance_id=insurance.id)
        if insurance.status != InsuranceStatus.PENDING:
            raise InvalidTransition("insurance_not_pending", current=insurance_state(insurance))

        if payload.decision is schemas.InsuranceDecision.VERIFIED:
            insurance.status = InsuranceStatus.VERIFIED
            insurance.verified_by_id = caller.user_id
            insurance.verified_at = now
            insurance.rejection_reason = None
        else:
            insurance.status = InsuranceStatus.REJECTED
            insurance.rejection_reason = payload.reason
        insurance.version += 1
        insurance.updated_at = now
        session.add(insurance)

    logger.info("Insurance %s reviewed: %s", insurance.id, insurance.status.value)
    return insurance


async def list_insurance(
    session: AsyncSession,
    caller: Caller,
    *,
    status_filter: InsuranceStatus | None = None,
) -> list[Insurance]:
    stmt = scope_to_caller(
        insurance_repo.scoped_select(),
        caller,
        landlord_col=Lease.landlord_id,
        tenant_col=Insurance.tenant_id,
    )
    async with session.begin():
        return await insurance_repo.list_insurance(session, stmt, status=status_filter)


async def run_insurance_expiry_sweep(
    session_factory: async_sessionmaker[AsyncSession],
    now: datetime,
    *,
    timeout_seconds: float | None = None,
    window_days: int | None = None,
) -> schemas.SweepReport:
    """Move VERIFIED / EXPIRING_SOON policies to the status their expiry implies.

    Each record is written in its own transaction with a compare-and-set on
    (status, version). Lost races are skipped, per-record errors are counted,
    and the run stops once ``timeout_seconds`` has elapsed, including while a
    read or write is still in flight. Status only moves towards EXPIRED.
    Running it twice with the same ``now`` updates nothing the second time.
    Never raises.
    """

    timeout = settings.insurance_sweep_timeout_seconds if timeout_seconds is None else timeout_seconds
    window = settings.insurance_expiring_window_days if window_days is None else window_days
    report = schemas.SweepReport()

    if _sweep_lock.locked():
        logger.warning("Insurance sweep already running; skipping this invocation")
        report.completed = False
        return report

    async with _sweep_lock:
        deadline = time.monotonic() + timeout
        try:
            candidates = await asyncio.wait_for(_load_candidates(session_factory), _remaining(deadline))
        except TimeoutError:
            logger.warning("Insurance sweep timed out after %.0fs loading candidates", timeout)
            report.completed = False
            return report
        except Exception:
            logger.exception("Insurance sweep could not load candidates")
            report.completed = False
            return report

        for candidate in candidates:
            if time.monotonic() >= deadline:
                report.completed = False
                break

            report.examined += 1
            target = compute_status(candidate.expiry_date, now, window)
            if SWEEP_RANK[target] <= SWEEP_RANK[candidate.status]:
                continue

            try:
                await asyncio.wait_for(
                    _apply_sweep_write(session_factory, candidate, target, now),
                    _remaining(deadline),
                )
            except TimeoutError:
                report.completed = False
                break
            except OptimisticConflict:
                report.skipped_due_to_conflict += 1
                logger.info("Insurance %s changed during sweep; skipped", candidate.id)
            except Exception:
                report.failed += 1
                logger.warning("Insurance sweep failed for record %s", candidate.id, exc_info=True)
            else:
                report.updated += 1

        if not report.completed:
            logger.warning(
                "Insurance sweep timed out after %.0fs: %d of %d records examined",
                timeout,
                report.examined,
                len(candidates),
            )

    logger.info(
        "Insurance sweep finished: examined=%d updated=%d conflicts=%d failed=%d completed=%s",
        report.examined,
        report.updated,
        report.skipped_due_to_conflict,
        report.failed,
        report.completed,
    )
    return report


def _remaining(deadline: float) -> float:
    return max(deadline - time.monotonic(), 0.0)


async def _load_candidates(
    session_factory: async_sessionmaker[AsyncSession],
) -> list[insurance_repo.SweepCandidate]:
    async with session_factory() as session:
        async with session.begin():
            return await insurance_repo.list_sweep_candidates(session)


async def _apply_sweep_write(
    session_factory: async_sessionmaker[AsyncSession],
    candidate: insurance_repo.SweepCandidate,
    target: InsuranceStatus,
    now: datetime,
) -> None:
    async with session_factory() as session:
        async with session.begin():
            written = await insurance_repo.compare_and_set_status(
                session,
                insurance_id=candidate.id,
                expected_status=candidate.status,
                expected_version=candidate.version,
                new_status=target,
                now=now,
            )
            if not written:
                raise OptimisticConflict("insurance_changed", current={"id": candidate.id})


async def _get_insurance(session: AsyncSession, insurance_id: str) -> Insurance:
    insurance = await insurance_repo.get_by_id(session, insurance_id)
    if insurance is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Insurance not found")
    return insurance
