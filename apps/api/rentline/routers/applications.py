"""Rental application endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.session import get_session
from ..models.application import ApplicationStatus
from ..schemas import applications as applications_schema
from ..services import applications as applications_service
from ..services.scope import Caller
from .deps import get_caller

router = APIRouter()


@router.post("", response_model=applications_schema.ApplicationOut, status_code=status.HTTP_201_CREATED)
async def submit_application(
    payload: applications_schema.ApplicationCreate,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_session),
) -> applications_schema.ApplicationOut:
    application = await applications_service.submit_application(session, caller, payload)
    return applications_schema.ApplicationOut.model_validate(application)


@router.get("", response_model=list[applications_schema.ApplicationOut])
async def list_applications(
    status_filter: ApplicationStatus | None = None,
    listing_id: str | None = None,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_session),
) -> list[applications_schema.ApplicationOut]:
    applications = await applications_service.list_applications(
        session, caller, status_filter=status_filter, listing_id=listing_id
    )
    return [applications_schema.ApplicationOut.model_validate(item) for item in applications]


@router.post("/{application_id}/open", response_model=applications_schema.ApplicationOut)
async def open_application(
    application_id: str,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_session),
) -> applications_schema.ApplicationOut:
    """Mark a NEW application as under review."""

    application = await applications_service.open_application(session, caller, application_id)
    return applications_schema.ApplicationOut.model_validate(application)


@router.post("/{application_id}/review", response_model=applications_schema.ReviewResult)
async def review_application(
    application_id: str,
    payload: applications_schema.ApplicationReview,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_session),
) -> applications_schema.ReviewResult:
    """Approve or reject; approval returns the generated DRAFT lease."""

    return await applications_service.review_application(session, caller, application_id, payload)
