"""Listing commands and availability-aware reads."""
from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import InvalidTransition
from ..models.listing import Listing
from ..models.user import UserRole
from ..repositories import applications as applications_repo
from ..repositories import leases as leases_repo
from ..repositories import listings as listings_repo
from ..schemas import listings as schemas
from .applications import approved_lease_ids, is_settled
from .availability import is_available
from .scope import Caller, ensure_landlord_scope, require_role

logger = logging.getLogger(__name__)


async def create_listing(
    session: AsyncSession,
    caller: Caller,
    payload: schemas.ListingCreate,
) -> schemas.ListingOut:
    """Publish a listing owned by the calling landlord."""

    require_role(caller, UserRole.LANDLORD, UserRole.ADMIN)

    async with session.begin():
        listing = await listings_repo.create_listing(
            session,
            landlord_id=caller.user_id,
            title=payload.title.strip(),
            address=payload.address.strip(),
            city=payload.city.strip(),
            property_type=payload.property_type,
            rent_amount=payload.rent_amount,
            rent_cycle=payload.rent_cycle,
            security_deposit=payload.security_deposit,
            available_date=payload.available_date,
        )

    logger.info("Listing %s created by %s", listing.id, caller.user_id)
    return schemas.ListingOut.from_listing(listing, is_available=True)


async def get_listing(session: AsyncSession, listing_id: str) -> schemas.ListingOut:
    """Return one listing with availability computed from live tables."""

    async with session.begin():
        listing = await _get_live_listing(session, listing_id)
        inputs = await listings_repo.load_availability_inputs(session, [listing.id])

    entry = inputs[listing.id]
    return schemas.ListingOut.from_listing(
        listing, is_available=is_available(listing, entry.applications, entry.leases)
    )


async def browse_listings(
    session: AsyncSession,
    filters: schemas.ListingFilters,
) -> list[schemas.ListingOut]:
    """Return the public feed: only listings that are currently available."""

    async with session.begin():
        listings = await listings_repo.search_listings(
            session,
            city=filters.city,
            property_type=filters.property_type,
            rent_max=filters.rent_max,
        )
        inputs = await listings_repo.load_availability_inputs(session, [listing.id for listing in listings])

    feed: list[schemas.ListingOut] = []
    for listing in listings:
        entry = inputs[listing.id]
        if is_available(listing, entry.applications, entry.leases):
            feed.append(schemas.ListingOut.from_listing(listing, is_available=True))
    return feed


async def list_my_listings(session: AsyncSession, caller: Caller) -> list[schemas.ListingOut]:
    """Return every listing the calling landlord owns, available or not."""

    require_role(caller, UserRole.LANDLORD, UserRole.ADMIN)

    async with session.begin():
        listings = await listings_repo.search_listings(
            session, landlord_id=None if caller.is_admin else caller.user_id
        )
        inputs = await listings_repo.load_availability_inputs(session, [listing.id for listing in listings])

    return [
        schemas.ListingOut.from_listing(
            listing,
            is_available=is_available(listing, inputs[listing.id].applications, inputs[listing.id].leases),
        )
        for listing in listings
    ]


async def reopen_listing(session: AsyncSession, caller: Caller, listing_id: str) -> schemas.ReopenResponse:
    """Clear settled applications so the listing returns to the feed.

    Settled means REJECTED, or APPROVED with its lease terminated or deleted.
    Neither rejection nor the end of a lease reopens a listing on its own; the
    owner (or an admin) decides when the slot is offered again.
    """

    now = datetime.now(timezone.utc)

    async with session.begin():
        listing = await _get_live_listing(session, listing_id)
        ensure_landlord_scope(caller, listing.landlord_id, listing_id=listing.id)

        applications = await applications_repo.list_for_listing(session, listing_id=listing.id)
        lease_ids = approved_lease_ids(applications)
        open_leases = await leases_repo.open_lease_ids(session, lease_ids) if lease_ids else set()
        unresolved = [app for app in applications if not is_settled(app, open_leases)]
        if unresolved:
            raise InvalidTransition(
                "listing_has_unresolved_applications",
                current={"application_ids": [app.id for app in unresolved]},
            )

        for application in applications:
            application.deleted_at = now
            session.add(application)

        inputs = await listings_repo.load_availability_inputs(session, [listing.id])

    logger.info("Listing %s reopened, %d application(s) cleared", listing.id, len(applications))
    entry = inputs[listing.id]
    return schemas.ReopenResponse(
        listing=schemas.ListingOut.from_listing(
            listing, is_available=is_available(listing, entry.applications, entry.leases)
        ),
        cleared_applications=len(applications),
    )


async def _get_live_listing(session: AsyncSession, listing_id: str) -> Listing:
    listing = await listings_repo.get_by_id(session, listing_id)
    if listing is None or listing.deleted_at is not None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Listing not found")
    return listing
