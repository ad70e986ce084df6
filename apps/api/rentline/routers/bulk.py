"""Bulk mutation endpoint."""
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.session import get_session
from ..schemas import bulk as bulk_schema
from ..services import bulk as bulk_service
from ..services.scope import Caller
from .deps import get_caller

router = APIRouter()


@router.post("", response_model=bulk_schema.BulkMutationResponse)
async def bulk_mutate(
    payload: bulk_schema.BulkMutationRequest,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_session),
) -> bulk_schema.BulkMutationResponse:
    """Apply one action to many records; either all succeed or none are written."""

    return await bulk_service.bulk_mutate(session, caller, payload)
