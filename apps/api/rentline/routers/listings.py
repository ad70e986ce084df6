"""Listing endpoints."""
from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.session import get_session
from ..models.listing import PropertyType
from ..schemas import listings as listings_schema
from ..services import listings as listings_service
from ..services.scope import Caller
from .deps import get_caller

router = APIRouter()


@router.post("", response_model=listings_schema.ListingOut, status_code=status.HTTP_201_CREATED)
async def create_listing(
    payload: listings_schema.ListingCreate,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_session),
) -> listings_schema.ListingOut:
    return await listings_service.create_listing(session, caller, payload)


@router.get("", response_model=list[listings_schema.ListingOut])
async def browse_listings(
    city: str | None = None,
    property_type: PropertyType | None = None,
    rent_max: Decimal | None = Query(default=None, gt=0),
    session: AsyncSession = Depends(get_session),
) -> list[listings_schema.ListingOut]:
    """Public feed of currently available listings."""

    filters = listings_schema.ListingFilters(city=city, property_type=property_type, rent_max=rent_max)
    return await listings_service.browse_listings(session, filters)


@router.get("/mine", response_model=list[listings_schema.ListingOut])
async def list_my_listings(
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_session),
) -> list[listings_schema.ListingOut]:
    return await listings_service.list_my_listings(session, caller)


@router.get("/{listing_id}", response_model=listings_schema.ListingOut)
async def get_listing(
    listing_id: str,
    session: AsyncSession = Depends(get_session),
) -> listings_schema.ListingOut:
    return await listings_service.get_listing(session, listing_id)


@router.post("/{listing_id}/reopen", response_model=listings_schema.ReopenResponse)
async def reopen_listing(
    listing_id: str,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_session),
) -> listings_schema.ReopenResponse:
    """Clear rejected applications so the listing shows up in the feed again."""

    return await listings_service.reopen_listing(session, caller, listing_id)
