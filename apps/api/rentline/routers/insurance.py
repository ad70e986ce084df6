"""Insurance compliance endpoints."""
from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db.session import get_session, get_session_factory
from ..models.insurance import InsuranceStatus
from ..models.user import UserRole
from ..schemas import insurance as insurance_schema
from ..services import insurance as insurance_service
from ..services.scope import Caller, require_role
from .deps import get_caller

router = APIRouter()


@router.post("", response_model=insurance_schema.InsuranceOut, status_code=status.HTTP_201_CREATED)
async def submit_insurance(
    payload: insurance_schema.InsuranceCreate,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_session),
) -> insurance_schema.InsuranceOut:
    insurance = await insurance_service.submit_insurance(session, caller, payload)
    return insurance_schema.InsuranceOut.model_validate(insurance)


@router.get("", response_model=list[insurance_schema.InsuranceOut])
async def list_insurance(
    status_filter: InsuranceStatus | None = None,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_session),
) -> list[insurance_schema.InsuranceOut]:
    records = await insurance_service.list_insurance(session, caller, status_filter=status_filter)
    return [insurance_schema.InsuranceOut.model_validate(item) for item in records]


@router.post("/sweep", response_model=insurance_schema.SweepReport)
async def trigger_sweep(
    payload: insurance_schema.SweepRequest | None = None,
    caller: Caller = Depends(get_caller),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> insurance_schema.SweepReport:
    """Run the expiry sweep on demand (admins only)."""

    require_role(caller, UserRole.ADMIN)
    now = payload.now if payload is not None and payload.now is not None else datetime.now(timezone.utc)
    return await insurance_service.run_insurance_expiry_sweep(session_factory, now)


@router.patch("/{insurance_id}", response_model=insurance_schema.InsuranceOut)
async def update_insurance(
    insurance_id: str,
    payload: insurance_schema.InsuranceUpdate,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_session),
) -> insurance_schema.InsuranceOut:
    insurance = await insurance_service.update_insurance(session, caller, insurance_id, payload)
    return insurance_schema.InsuranceOut.model_validate(insurance)


@router.post("/{insurance_id}/review", response_model=insurance_schema.InsuranceOut)
async def review_insurance(
    insurance_id: str,
    payload: insurance_schema.InsuranceReview,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_session),
) -> insurance_schema.InsuranceOut:
    insurance = await insurance_service.review_insurance(session, caller, insurance_id, payload)
    return insurance_schema.InsuranceOut.model_validate(insurance)
