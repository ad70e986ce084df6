"""Client for the external e-sign / lease document service."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from ..core.config import settings

logger = logging.getLogger(__name__)


class SigningUnavailableError(RuntimeError):
    """Raised when the e-sign service cannot open a session."""


@dataclass(frozen=True, slots=True)
class SigningSession:
    session_ref: str
    signing_url: str | None = None


class SigningGateway(Protocol):
    async def request_session(self, *, lease_id: str, tenant_id: str, landlord_id: str) -> SigningSession:
        ...


class HttpSigningGateway:
    """Opens signing sessions over HTTP; confirmation arrives via callback."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.esign_base_url).rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self.headers = {
            "Authorization": f"Bearer {api_key if api_key is not None else settings.esign_api_key}",
            "Content-Type": "application/json",
        }

    async def request_session(self, *, lease_id: str, tenant_id: str, landlord_id: str) -> SigningSession:
        payload: dict[str, str] = {
            "document_ref": lease_id,
            "signer_id": tenant_id,
            "countersigner_id": landlord_id,
        }
        if settings.esign_callback_url:
            payload["callback_url"] = settings.esign_callback_url

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                res = await client.post(f"{self.base_url}/signing-sessions", headers=self.headers, json=payload)
            res.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("E-sign session request failed for lease %s: %s", lease_id, exc)
            raise SigningUnavailableError("E-sign service unavailable") from exc

        data = res.json()
        session_ref = data.get("session_id")
        if not session_ref:
            raise SigningUnavailableError("E-sign service returned no session id")
        return SigningSession(session_ref=session_ref, signing_url=data.get("signing_url"))


def get_signing_gateway() -> SigningGateway:
    """FastAPI dependency returning the configured gateway."""

    return HttpSigningGateway()
