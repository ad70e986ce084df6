"""Domain errors raised by the lifecycle state machines."""
from __future__ import annotations

import logging
from typing import Any

from fastapi import Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class LifecycleError(Exception):
    """Base class for rejected commands.

    ``reason`` is a stable machine-readable code. ``current`` optionally carries
    the unchanged entity state so callers can re-read and retry.
    """

    kind = "lifecycle_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, reason: str, *, current: dict[str, Any] | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.current = current

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.kind, "reason": self.reason, "current": self.current}


class InvalidTransition(LifecycleError):
    kind = "invalid_transition"
    status_code = status.HTTP_409_CONFLICT


class ConflictingActiveLease(LifecycleError):
    kind = "conflicting_active_lease"
    status_code = status.HTTP_409_CONFLICT


class DuplicateApplication(LifecycleError):
    kind = "duplicate_application"
    status_code = status.HTTP_409_CONFLICT


class OwnershipViolation(LifecycleError):
    kind = "ownership_violation"
    status_code = status.HTTP_403_FORBIDDEN


class OptimisticConflict(LifecycleError):
    """Compare-and-set mismatch. Counted by the sweep, never surfaced."""

    kind = "optimistic_conflict"
    status_code = status.HTTP_409_CONFLICT


class BulkPreconditionFailed(LifecycleError):
    kind = "bulk_precondition_failed"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, failures: dict[str, str]) -> None:
        super().__init__("bulk_precondition_failed")
        self.failures = failures

    @property
    def ids(self) -> list[str]:
        return list(self.failures)

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["failures"] = self.failures
        return payload


async def lifecycle_error_handler(request: Request, exc: LifecycleError) -> JSONResponse:
    """Render a LifecycleError as a JSON body with its reason code."""

    logger.info("Rejected %s %s: %s (%s)", request.method, request.url.path, exc.kind, exc.reason)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())
