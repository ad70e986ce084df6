"""Lease endpoints, including the e-sign confirmation callback."""
from __future__ import annotations

import hmac
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..db.session import get_session
from ..models.lease import LeaseStatus
from ..schemas import leases as leases_schema
from ..services import leases as leases_service
from ..services.scope import Caller
from ..services.signing import SigningGateway, SigningUnavailableError, get_signing_gateway
from .deps import get_caller

logger = logging.getLogger(__name__)

router = APIRouter()


def verify_signing_callback(x_signing_key: str | None = Header(default=None)) -> None:
    """Reject callbacks that do not carry the shared e-sign secret."""

    secret = settings.esign_callback_secret
    if not secret or not x_signing_key or not hmac.compare_digest(x_signing_key, secret):
        logger.warning("Rejected e-sign callback with invalid key")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signing key")


@router.post("", response_model=leases_schema.LeaseOut, status_code=status.HTTP_201_CREATED)
async def create_lease(
    payload: leases_schema.LeaseCreate,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_session),
) -> leases_schema.LeaseOut:
    lease = await leases_service.create_lease(session, caller, payload)
    return leases_schema.LeaseOut.model_validate(lease)


@router.get("", response_model=list[leases_schema.LeaseOut])
async def list_leases(
    status_filter: LeaseStatus | None = None,
    listing_id: str | None = None,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_session),
) -> list[leases_schema.LeaseOut]:
    leases = await leases_service.list_leases(session, caller, status_filter=status_filter, listing_id=listing_id)
    return [leases_schema.LeaseOut.model_validate(lease) for lease in leases]


@router.get("/stalled-signings", response_model=list[leases_schema.LeaseOut])
async def list_stalled_signings(
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_session),
) -> list[leases_schema.LeaseOut]:
    """DRAFT leases still waiting on a signature past the timeout."""

    leases = await leases_service.list_stalled_signings(session, caller, datetime.now(timezone.utc))
    return [leases_schema.LeaseOut.model_validate(lease) for lease in leases]


@router.post("/{lease_id}/signing", response_model=leases_schema.SigningSessionOut)
async def request_signing(
    lease_id: str,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_session),
    gateway: SigningGateway = Depends(get_signing_gateway),
) -> leases_schema.SigningSessionOut:
    try:
        return await leases_service.request_signing(session, caller, lease_id, gateway)
    except SigningUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc


@router.post(
    "/{lease_id}/signing/confirm",
    response_model=leases_schema.LeaseOut,
    dependencies=[Depends(verify_signing_callback)],
)
async def confirm_signing(
    lease_id: str,
    payload: leases_schema.SigningConfirmation,
    session: AsyncSession = Depends(get_session),
) -> leases_schema.LeaseOut:
    """Callback from the e-sign service once both parties have signed."""

    lease = await leases_service.confirm_signing(session, lease_id, payload.session_ref)
    return leases_schema.LeaseOut.model_validate(lease)


@router.post("/{lease_id}/activate", response_model=leases_schema.LeaseOut)
async def activate_lease(
    lease_id: str,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_session),
) -> leases_schema.LeaseOut:
    lease = await leases_service.activate_lease(session, caller, lease_id)
    return leases_schema.LeaseOut.model_validate(lease)


@router.post("/{lease_id}/terminate", response_model=leases_schema.LeaseOut)
async def terminate_lease(
    lease_id: str,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_session),
) -> leases_schema.LeaseOut:
    lease = await leases_service.terminate_lease(session, caller, lease_id)
    return leases_schema.LeaseOut.model_validate(lease)
