"""Application state machine: NEW -> PENDING -> APPROVED | REJECTED."""
from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal

from dateutil.relativedelta import relativedelta
from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.errors import DuplicateApplication, InvalidTransition
from ..models.application import Application, ApplicationStatus
from ..models.listing import PaymentFrequency
from ..models.user import UserRole
from ..repositories import applications as applications_repo
from ..repositories import leases as leases_repo
from ..repositories import listings as listings_repo
from ..schemas import applications as schemas
from ..schemas.leases import LeaseOut
from .scope import Caller, ensure_landlord_scope, require_role, scope_to_caller

logger = logging.getLogger(__name__)


def application_state(application: Application) -> dict[str, str]:
    return {"id": application.id, "status": application.status.value}


def is_settled(application: Application, open_lease_ids: set[str]) -> bool:
    """True once nothing further can happen to the application.

    REJECTED applications are settled. An APPROVED one is settled when the
    lease it produced is no longer DRAFT or ACTIVE.
    """

    if application.status == ApplicationStatus.REJECTED:
        return True
    if application.status == ApplicationStatus.APPROVED:
        return application.lease_id not in open_lease_ids
    return False


def approved_lease_ids(applications) -> list[str]:
    return [
        app.lease_id
        for app in applications
        if app.status == ApplicationStatus.APPROVED and app.lease_id is not None
    ]


async def submit_application(
    session: AsyncSession,
    caller: Caller,
    payload: schemas.ApplicationCreate,
) -> Application:
    """Create a NEW application for the calling tenant.

    Only one NEW/PENDING application may exist per (listing, tenant); a tenant
    may apply again once the previous one was rejected.
    """

    require_role(caller, UserRole.TENANT)

    async with session.begin():
        listing = await listings_repo.get_by_id(session, payload.listing_id)
        if listing is None or listing.deleted_at is not None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Listing not found")

        existing = await applications_repo.find_open_for_pair(
            session, listing_id=listing.id, tenant_id=caller.user_id
        )
        if existing is not None:
            raise DuplicateApplication("open_application_exists", current=application_state(existing))

        application = await applications_repo.create_application(
            session,
            listing_id=listing.id,
            tenant_id=caller.user_id,
            landlord_id=listing.landlord_id,
            move_in_date=payload.move_in_date,
            message=payload.message,
        )

    logger.info("Application %s submitted for listing %s", application.id, listing.id)
    return application


async def open_application(session: AsyncSession, caller: Caller, application_id: str) -> Application:
    """Move a NEW application to PENDING when the landlord starts reviewing it."""

    async with session.begin():
        application = await _get_application(session, application_id)
        ensure_landlord_scope(caller, application.landlord_id, application_id=application.id)
        if application.status != ApplicationStatus.NEW:
            raise InvalidTransition("application_not_new", current=application_state(application))
        application.status = ApplicationStatus.PENDING
        session.add(application)

    return application


async def review_application(
    session: AsyncSession,
    caller: Caller,
    application_id: str,
    payload: schemas.ApplicationReview,
) -> schemas.ReviewResult:
    """Approve or reject a PENDING application.

    Approval and the DRAFT lease it creates are written in one transaction; if
    the lease cannot be created the application keeps its PENDING status.
    """

    now = datetime.now(timezone.utc)

    try:
        async with session.begin():
            application = await _get_application(session, application_id)
            ensure_landlord_scope(caller, application.landlord_id, application_id=application.id)
            if application.status != ApplicationStatus.PENDING:
                raise InvalidTransition("application_not_pending", current=application_state(application))

            lease = None
            if payload.decision is schemas.ReviewDecision.APPROVE:
                if await applications_repo.has_approved(session, listing_id=application.listing_id):
                    raise InvalidTransition("listing_already_approved", current=application_state(application))
                lease = await _create_draft_lease(session, application)
                application.status = ApplicationStatus.APPROVED
                application.lease_id = lease.id
            else:
                application.status = ApplicationStatus.REJECTED
            application.reviewed_at = now
            application.decision_notes = payload.notes
            session.add(application)
    except IntegrityError as exc:
        logger.warning("Approval of application %s lost a race: %s", application_id, exc.orig)
        current = await _reload_state(session, application_id)
        raise InvalidTransition("listing_already_approved", current=current) from exc

    logger.info("Application %s reviewed: %s", application.id, application.status.value)
    return schemas.ReviewResult(
        application=schemas.ApplicationOut.model_validate(application),
        lease=LeaseOut.model_validate(lease) if lease is not None else None,
    )


async def list_applications(
    session: AsyncSession,
    caller: Caller,
    *,
    status_filter: ApplicationStatus | None = None,
    listing_id: str | None = None,
) -> list[Application]:
    """Return applications visible to the caller."""

    stmt = scope_to_caller(
        select(Application),
        caller,
        landlord_col=Application.landlord_id,
        tenant_col=Application.tenant_id,
    )
    async with session.begin():
        return await applications_repo.list_applications(
            session, stmt, status=status_filter, listing_id=listing_id
        )


async def _create_draft_lease(session: AsyncSession, application: Application):
    listing = await listings_repo.get_by_id(session, application.listing_id)
    if listing is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Listing not found")

    start = application.move_in_date or date.today()
    end = start + relativedelta(months=settings.default_lease_term_months)
    return await leases_repo.create_lease(
        session,
        listing_id=listing.id,
        tenant_id=application.tenant_id,
        landlord_id=listing.landlord_id,
        application_id=application.id,
        start_date=start,
        end_date=end,
        rent_amount=listing.rent_amount,
        payment_frequency=listing.rent_cycle or PaymentFrequency.MONTHLY,
        security_deposit=listing.security_deposit or Decimal("0"),
        notes=f"Generated from application {application.id}",
    )


async def _get_application(session: AsyncSession, application_id: str) -> Application:
    application = await applications_repo.get_by_id(session, application_id)
    if application is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Application not found")
    return application


async def _reload_state(session: AsyncSession, application_id: str) -> dict[str, str] | None:
    async with session.begin():
        application = await applications_repo.get_by_id(session, application_id)
        return application_state(application) if application is not None else None
