"""Service-level tests for the application state machine."""
from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from rentline.core.errors import DuplicateApplication, InvalidTransition, OwnershipViolation
from rentline.models.application import ApplicationStatus
from rentline.models.lease import LeaseStatus
from rentline.models.listing import PaymentFrequency
from rentline.models.user import UserRole
from rentline.repositories import applications as applications_repo
from rentline.repositories import leases as leases_repo
from rentline.repositories import listings as listings_repo
from rentline.schemas import applications as schemas
from rentline.services import applications as applications_service
from rentline.services.scope import Caller


class DummySession:
    """Minimal session stub supporting async transaction context."""

    def __init__(self) -> None:
        self.added: list[object] = []

    def add(self, obj: object) -> None:
        self.added.append(obj)

    def begin(self):  # noqa: D401 - mimic SQLAlchemy's async begin
        session = self

        class _Tx:
            async def __aenter__(self_inner):
                return session

            async def __aexit__(self_inner, exc_type, exc, tb):
                return False

        return _Tx()


LANDLORD = Caller(user_id="landlord-1", role=UserRole.LANDLORD)
TENANT = Caller(user_id="tenant-1", role=UserRole.TENANT)


def _application(status: ApplicationStatus = ApplicationStatus.PENDING, **overrides) -> SimpleNamespace:
    fields = {
        "id": "app-1",
        "listing_id": "listing-1",
        "tenant_id": "tenant-1",
        "landlord_id": "landlord-1",
        "status": status,
        "move_in_date": date(2025, 11, 1),
        "message": None,
        "decision_notes": None,
        "reviewed_at": None,
        "lease_id": None,
        "created_at": datetime.now(timezone.utc),
        "deleted_at": None,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


def _listing(**overrides) -> SimpleNamespace:
    fields = {
        "id": "listing-1",
        "landlord_id": "landlord-1",
        "rent_amount": Decimal("1500.00"),
        "rent_cycle": None,
        "security_deposit": None,
        "deleted_at": None,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


async def _fake_create_lease(session, **kwargs):
    return SimpleNamespace(
        id="lease-1",
        status=LeaseStatus.DRAFT,
        signing_session_ref=None,
        signing_requested_at=None,
        signed_at=None,
        activated_at=None,
        terminated_at=None,
        termination_reason=None,
        created_at=datetime.now(timezone.utc),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_submit_rejects_second_open_application(monkeypatch):
    create = AsyncMock()
    monkeypatch.setattr(listings_repo, "get_by_id", AsyncMock(return_value=_listing()))
    monkeypatch.setattr(
        applications_repo,
        "find_open_for_pair",
        AsyncMock(return_value=_application(ApplicationStatus.NEW)),
    )
    monkeypatch.setattr(applications_repo, "create_application", create)

    with pytest.raises(DuplicateApplication) as exc:
        await applications_service.submit_application(
            DummySession(), TENANT, schemas.ApplicationCreate(listing_id="listing-1")
        )

    assert exc.value.current == {"id": "app-1", "status": "new"}
    create.assert_not_awaited()


@pytest.mark.asyncio
async def test_submit_creates_new_application(monkeypatch):
    created = _application(ApplicationStatus.NEW)
    create = AsyncMock(return_value=created)
    monkeypatch.setattr(listings_repo, "get_by_id", AsyncMock(return_value=_listing()))
    monkeypatch.setattr(applications_repo, "find_open_for_pair", AsyncMock(return_value=None))
    monkeypatch.setattr(applications_repo, "create_application", create)

    result = await applications_service.submit_application(
        DummySession(), TENANT, schemas.ApplicationCreate(listing_id="listing-1", message="Hello")
    )

    assert result is created
    assert create.await_args.kwargs["landlord_id"] == "landlord-1"
    assert create.await_args.kwargs["tenant_id"] == "tenant-1"


@pytest.mark.asyncio
async def test_landlord_cannot_submit_application():
    with pytest.raises(OwnershipViolation):
        await applications_service.submit_application(
            DummySession(), LANDLORD, schemas.ApplicationCreate(listing_id="listing-1")
        )


@pytest.mark.asyncio
async def test_open_moves_new_to_pending(monkeypatch):
    application = _application(ApplicationStatus.NEW)
    monkeypatch.setattr(applications_repo, "get_by_id", AsyncMock(return_value=application))

    result = await applications_service.open_application(DummySession(), LANDLORD, "app-1")

    assert result.status == ApplicationStatus.PENDING


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [ApplicationStatus.NEW, ApplicationStatus.APPROVED, ApplicationStatus.REJECTED])
async def test_review_requires_pending(monkeypatch, status):
    application = _application(status)
    create_lease = AsyncMock()
    monkeypatch.setattr(applications_repo, "get_by_id", AsyncMock(return_value=application))
    monkeypatch.setattr(leases_repo, "create_lease", create_lease)

    with pytest.raises(InvalidTransition) as exc:
        await applications_service.review_application(
            DummySession(),
            LANDLORD,
            "app-1",
            schemas.ApplicationReview(decision=schemas.ReviewDecision.APPROVE),
        )

    assert exc.value.reason == "application_not_pending"
    assert application.status == status
    create_lease.assert_not_awaited()


@pytest.mark.asyncio
async def test_approve_creates_draft_lease_from_listing_terms(monkeypatch):
    application = _application()
    monkeypatch.setattr(applications_repo, "get_by_id", AsyncMock(return_value=application))
    monkeypatch.setattr(applications_repo, "has_approved", AsyncMock(return_value=False))
    monkeypatch.setattr(listings_repo, "get_by_id", AsyncMock(return_value=_listing()))
    monkeypatch.setattr(leases_repo, "create_lease", _fake_create_lease)

    result = await applications_service.review_application(
        DummySession(),
        LANDLORD,
        "app-1",
        schemas.ApplicationReview(decision=schemas.ReviewDecision.APPROVE, notes="Welcome"),
    )

    assert result.application.status == ApplicationStatus.APPROVED
    assert result.application.lease_id == "lease-1"
    assert result.lease is not None
    assert result.lease.status == LeaseStatus.DRAFT
    assert result.lease.start_date == date(2025, 11, 1)
    assert result.lease.end_date == date(2026, 11, 1)
    assert result.lease.rent_amount == Decimal("1500.00")
    assert result.lease.payment_frequency == PaymentFrequency.MONTHLY
    assert result.lease.security_deposit == Decimal("0")
    assert result.lease.application_id == "app-1"


@pytest.mark.asyncio
async def test_reject_creates_no_lease(monkeypatch):
    application = _application()
    create_lease = AsyncMock()
    monkeypatch.setattr(applications_repo, "get_by_id", AsyncMock(return_value=application))
    monkeypatch.setattr(leases_repo, "create_lease", create_lease)

    result = await applications_service.review_application(
        DummySession(),
        LANDLORD,
        "app-1",
        schemas.ApplicationReview(decision=schemas.ReviewDecision.REJECT),
    )

    assert result.application.status == ApplicationStatus.REJECTED
    assert result.lease is None
    create_lease.assert_not_awaited()


@pytest.mark.asyncio
async def test_second_approval_on_listing_is_rejected(monkeypatch):
    application = _application()
    monkeypatch.setattr(applications_repo, "get_by_id", AsyncMock(return_value=application))
    monkeypatch.setattr(applications_repo, "has_approved", AsyncMock(return_value=True))

    with pytest.raises(InvalidTransition) as exc:
        await applications_service.review_application(
            DummySession(),
            LANDLORD,
            "app-1",
            schemas.ApplicationReview(decision=schemas.ReviewDecision.APPROVE),
        )

    assert exc.value.reason == "listing_already_approved"
    assert application.status == ApplicationStatus.PENDING


@pytest.mark.asyncio
async def test_failed_lease_creation_leaves_application_pending(monkeypatch):
    application = _application()
    monkeypatch.setattr(applications_repo, "get_by_id", AsyncMock(return_value=application))
    monkeypatch.setattr(applications_repo, "has_approved", AsyncMock(return_value=False))
    monkeypatch.setattr(listings_repo, "get_by_id", AsyncMock(return_value=_listing()))
    monkeypatch.setattr(leases_repo, "create_lease", AsyncMock(side_effect=RuntimeError("db unavailable")))

    with pytest.raises(RuntimeError):
        await applications_service.review_application(
            DummySession(),
            LANDLORD,
            "app-1",
            schemas.ApplicationReview(decision=schemas.ReviewDecision.APPROVE),
        )

    assert application.status == ApplicationStatus.PENDING
    assert application.lease_id is None


@pytest.mark.asyncio
async def test_review_by_other_landlord_is_denied(monkeypatch):
    application = _application(landlord_id="landlord-2")
    monkeypatch.setattr(applications_repo, "get_by_id", AsyncMock(return_value=application))

    with pytest.raises(OwnershipViolation):
        await applications_service.review_application(
            DummySession(),
            LANDLORD,
            "app-1",
            schemas.ApplicationReview(decision=schemas.ReviewDecision.REJECT),
        )

    assert application.status == ApplicationStatus.PENDING
