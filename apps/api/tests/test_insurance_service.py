"""Tests for insurance review and the expiry sweep."""
from __future__ import annotations

import asyncio
import time
from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from fastapi import HTTPException

from rentline.core.errors import InvalidTransition, OwnershipViolation
from rentline.models.insurance import SWEEPABLE_STATUSES, InsuranceStatus
from rentline.models.user import UserRole
from rentline.repositories import insurance as insurance_repo
from rentline.schemas import insurance as schemas
from rentline.services import insurance as insurance_service
from rentline.services.scope import Caller


class DummySession:
    """Session stub usable both as a factory product and a transaction source."""

    def __init__(self) -> None:
        self.added: list[object] = []

    def add(self, obj: object) -> None:
        self.added.append(obj)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    def begin(self):  # noqa: D401 - mimic SQLAlchemy's async begin
        session = self

        class _Tx:
            async def __aenter__(self_inner):
                return session

            async def __aexit__(self_inner, exc_type, exc, tb):
                return False

        return _Tx()


class InMemoryInsurance:
    """Stands in for the insurance table: snapshot reads and compare-and-set writes."""

    def __init__(self, records: dict[str, dict]) -> None:
        self.records = records
        self.failing: set[str] = set()

    async def list_sweep_candidates(self, session):
        return [
            insurance_repo.SweepCandidate(
                id=record_id,
                status=record["status"],
                version=record["version"],
                expiry_date=record["expiry_date"],
            )
            for record_id, record in self.records.items()
            if record["status"] in SWEEPABLE_STATUSES
        ]

    async def compare_and_set_status(
        self, session, *, insurance_id, expected_status, expected_version, new_status, now
    ):
        if insurance_id in self.failing:
            raise RuntimeError("connection reset")
        record = self.records[insurance_id]
        if record["status"] != expected_status or record["version"] != expected_version:
            return False
        record["status"] = new_status
        record["version"] += 1
        return True


NOW = datetime(2025, 6, 1, 0, 0, tzinfo=timezone.utc)
TODAY = NOW.date()
LANDLORD = Caller(user_id="landlord-1", role=UserRole.LANDLORD)
TENANT = Caller(user_id="tenant-1", role=UserRole.TENANT)


def _record(status: InsuranceStatus, days_left: int, version: int = 1) -> dict:
    return {"status": status, "version": version, "expiry_date": TODAY + timedelta(days=days_left)}


def _install(monkeypatch, table: InMemoryInsurance) -> None:
    monkeypatch.setattr(insurance_repo, "list_sweep_candidates", table.list_sweep_candidates)
    monkeypatch.setattr(insurance_repo, "compare_and_set_status", table.compare_and_set_status)


@pytest.mark.parametrize(
    ("days_left", "expected"),
    [
        (-1, InsuranceStatus.EXPIRED),
        (0, InsuranceStatus.EXPIRED),
        (1, InsuranceStatus.EXPIRING_SOON),
        (20, InsuranceStatus.EXPIRING_SOON),
        (30, InsuranceStatus.EXPIRING_SOON),
        (31, InsuranceStatus.VERIFIED),
    ],
)
def test_compute_status_thresholds(days_left, expected):
    assert insurance_service.compute_status(TODAY + timedelta(days=days_left), NOW) == expected


@pytest.mark.asyncio
async def test_sweep_moves_records_to_their_computed_status(monkeypatch):
    table = InMemoryInsurance(
        {
            "soon": _record(InsuranceStatus.VERIFIED, 20),
            "gone": _record(InsuranceStatus.EXPIRING_SOON, -1),
            "fine": _record(InsuranceStatus.VERIFIED, 90),
            "pending": _record(InsuranceStatus.PENDING, -10),
        }
    )
    _install(monkeypatch, table)

    report = await insurance_service.run_insurance_expiry_sweep(DummySession, NOW, timeout_seconds=60, window_days=30)

    assert table.records["soon"]["status"] == InsuranceStatus.EXPIRING_SOON
    assert table.records["gone"]["status"] == InsuranceStatus.EXPIRED
    assert table.records["fine"]["status"] == InsuranceStatus.VERIFIED
    assert table.records["pending"]["status"] == InsuranceStatus.PENDING
    assert report.examined == 3
    assert report.updated == 2
    assert report.failed == 0
    assert report.completed is True


@pytest.mark.asyncio
async def test_second_sweep_with_same_now_changes_nothing(monkeypatch):
    table = InMemoryInsurance(
        {
            "soon": _record(InsuranceStatus.VERIFIED, 20),
            "gone": _record(InsuranceStatus.VERIFIED, -1),
        }
    )
    _install(monkeypatch, table)

    first = await insurance_service.run_insurance_expiry_sweep(DummySession, NOW, timeout_seconds=60)
    second = await insurance_service.run_insurance_expiry_sweep(DummySession, NOW, timeout_seconds=60)

    assert first.updated == 2
    assert second.updated == 0
    assert second.examined == 1


@pytest.mark.asyncio
async def test_concurrent_change_is_skipped_not_overwritten(monkeypatch):
    table = InMemoryInsurance({"soon": _record(InsuranceStatus.VERIFIED, 20)})
    original_list = table.list_sweep_candidates

    async def list_then_reject(session):
        candidates = await original_list(session)
        # A reviewer rejects the policy after the snapshot was taken.
        table.records["soon"]["status"] = InsuranceStatus.REJECTED
        table.records["soon"]["version"] += 1
        return candidates

    monkeypatch.setattr(insurance_repo, "list_sweep_candidates", list_then_reject)
    monkeypatch.setattr(insurance_repo, "compare_and_set_status", table.compare_and_set_status)

    report = await insurance_service.run_insurance_expiry_sweep(DummySession, NOW, timeout_seconds=60)

    assert report.skipped_due_to_conflict == 1
    assert report.updated == 0
    assert table.records["soon"]["status"] == InsuranceStatus.REJECTED


@pytest.mark.asyncio
async def test_one_failing_record_does_not_abort_the_batch(monkeypatch):
    table = InMemoryInsurance(
        {
            "broken": _record(InsuranceStatus.VERIFIED, -5),
            "soon": _record(InsuranceStatus.VERIFIED, 10),
        }
    )
    table.failing.add("broken")
    _install(monkeypatch, table)

    report = await insurance_service.run_insurance_expiry_sweep(DummySession, NOW, timeout_seconds=60)

    assert report.failed == 1
    assert report.updated == 1
    assert report.completed is True
    assert table.records["soon"]["status"] == InsuranceStatus.EXPIRING_SOON


@pytest.mark.asyncio
async def test_sweep_stops_when_timeout_elapses(monkeypatch):
    table = InMemoryInsurance({"soon": _record(InsuranceStatus.VERIFIED, 10)})
    _install(monkeypatch, table)

    report = await insurance_service.run_insurance_expiry_sweep(DummySession, NOW, timeout_seconds=0)

    assert report.completed is False
    assert report.examined == 0
    assert table.records["soon"]["status"] == InsuranceStatus.VERIFIED


@pytest.mark.asyncio
async def test_hung_write_is_abandoned_at_the_deadline(monkeypatch):
    table = InMemoryInsurance(
        {
            "stuck": _record(InsuranceStatus.VERIFIED, 10),
            "later": _record(InsuranceStatus.VERIFIED, -2),
        }
    )
    original_write = table.compare_and_set_status

    async def slow_write(session, *, insurance_id, **kwargs):
        if insurance_id == "stuck":
            await asyncio.sleep(5)
        return await original_write(session, insurance_id=insurance_id, **kwargs)

    monkeypatch.setattr(insurance_repo, "list_sweep_candidates", table.list_sweep_candidates)
    monkeypatch.setattr(insurance_repo, "compare_and_set_status", slow_write)

    started = time.monotonic()
    report = await insurance_service.run_insurance_expiry_sweep(DummySession, NOW, timeout_seconds=0.2)

    assert time.monotonic() - started < 2
    assert report.completed is False
    assert report.updated == 0
    assert table.records["stuck"]["status"] == InsuranceStatus.VERIFIED
    assert table.records["later"]["status"] == InsuranceStatus.VERIFIED


@pytest.mark.asyncio
async def test_hung_candidate_load_is_abandoned_at_the_deadline(monkeypatch):
    async def slow_load(session):
        await asyncio.sleep(5)
        return []

    monkeypatch.setattr(insurance_repo, "list_sweep_candidates", slow_load)

    started = time.monotonic()
    report = await insurance_service.run_insurance_expiry_sweep(DummySession, NOW, timeout_seconds=0.2)

    assert time.monotonic() - started < 2
    assert report.completed is False
    assert report.examined == 0


@pytest.mark.asyncio
async def test_sweep_does_not_move_expiring_policy_back_to_verified(monkeypatch):
    table = InMemoryInsurance({"soon": _record(InsuranceStatus.EXPIRING_SOON, 90)})
    _install(monkeypatch, table)

    report = await insurance_service.run_insurance_expiry_sweep(DummySession, NOW, timeout_seconds=60)

    assert report.examined == 1
    assert report.updated == 0
    assert table.records["soon"]["status"] == InsuranceStatus.EXPIRING_SOON
    assert table.records["soon"]["version"] == 1


@pytest.mark.asyncio
async def test_overlapping_sweep_is_skipped(monkeypatch):
    table = InMemoryInsurance({"soon": _record(InsuranceStatus.VERIFIED, 10)})
    _install(monkeypatch, table)

    async with insurance_service._sweep_lock:
        report = await insurance_service.run_insurance_expiry_sweep(DummySession, NOW, timeout_seconds=60)

    assert report.completed is False
    assert report.examined == 0
    assert table.records["soon"]["status"] == InsuranceStatus.VERIFIED


@pytest.mark.asyncio
async def test_sweep_never_raises_when_candidates_cannot_load(monkeypatch):
    monkeypatch.setattr(
        insurance_repo,
        "list_sweep_candidates",
        AsyncMock(side_effect=RuntimeError("database unavailable")),
    )

    report = await insurance_service.run_insurance_expiry_sweep(DummySession, NOW, timeout_seconds=60)

    assert report.completed is False


def _insurance(status: InsuranceStatus, **overrides) -> SimpleNamespace:
    fields = {
        "id": "ins-1",
        "tenant_id": "tenant-1",
        "lease_id": "lease-1",
        "status": status,
        "version": 1,
        "start_date": date(2025, 1, 1),
        "expiry_date": date(2026, 1, 1),
        "verified_by_id": None,
        "verified_at": None,
        "rejection_reason": None,
        "updated_at": None,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


@pytest.mark.asyncio
async def test_review_verifies_pending_policy(monkeypatch):
    insurance = _insurance(InsuranceStatus.PENDING)
    monkeypatch.setattr(insurance_repo, "get_by_id", AsyncMock(return_value=insurance))
    monkeypatch.setattr(insurance_repo, "get_landlord_id", AsyncMock(return_value="landlord-1"))

    result = await insurance_service.review_insurance(
        DummySession(), LANDLORD, "ins-1", schemas.InsuranceReview(decision=schemas.InsuranceDecision.VERIFIED)
    )

    assert result.status == InsuranceStatus.VERIFIED
    assert result.verified_by_id == "landlord-1"
    assert result.version == 2


@pytest.mark.asyncio
async def test_review_requires_pending(monkeypatch):
    insurance = _insurance(InsuranceStatus.VERIFIED)
    monkeypatch.setattr(insurance_repo, "get_by_id", AsyncMock(return_value=insurance))
    monkeypatch.setattr(insurance_repo, "get_landlord_id", AsyncMock(return_value="landlord-1"))

    with pytest.raises(InvalidTransition) as exc:
        await insurance_service.review_insurance(
            DummySession(), LANDLORD, "ins-1", schemas.InsuranceReview(decision=schemas.InsuranceDecision.REJECTED)
        )

    assert exc.value.reason == "insurance_not_pending"
    assert insurance.status == InsuranceStatus.VERIFIED


@pytest.mark.asyncio
async def test_review_by_unrelated_landlord_is_denied(monkeypatch):
    insurance = _insurance(InsuranceStatus.PENDING)
    monkeypatch.setattr(insurance_repo, "get_by_id", AsyncMock(return_value=insurance))
    monkeypatch.setattr(insurance_repo, "get_landlord_id", AsyncMock(return_value="landlord-2"))

    with pytest.raises(OwnershipViolation):
        await insurance_service.review_insurance(
            DummySession(), LANDLORD, "ins-1", schemas.InsuranceReview(decision=schemas.InsuranceDecision.VERIFIED)
        )


@pytest.mark.asyncio
async def test_update_rejected_policy_returns_it_to_pending(monkeypatch):
    insurance = _insurance(InsuranceStatus.REJECTED, rejection_reason="Wrong policy holder")
    monkeypatch.setattr(insurance_repo, "get_by_id", AsyncMock(return_value=insurance))

    result = await insurance_service.update_insurance(
        DummySession(), TENANT, "ins-1", schemas.InsuranceUpdate(policy_number="POL-2")
    )

    assert result.status == InsuranceStatus.PENDING
    assert result.policy_number == "POL-2"
    assert result.rejection_reason is None


@pytest.mark.asyncio
async def test_update_verified_policy_is_refused(monkeypatch):
    insurance = _insurance(InsuranceStatus.VERIFIED)
    monkeypatch.setattr(insurance_repo, "get_by_id", AsyncMock(return_value=insurance))

    with pytest.raises(InvalidTransition):
        await insurance_service.update_insurance(
            DummySession(), TENANT, "ins-1", schemas.InsuranceUpdate(policy_number="POL-2")
        )


@pytest.mark.asyncio
async def test_update_rejects_expiry_before_start(monkeypatch):
    insurance = _insurance(InsuranceStatus.PENDING)
    monkeypatch.setattr(insurance_repo, "get_by_id", AsyncMock(return_value=insurance))

    with pytest.raises(HTTPException) as exc:
        await insurance_service.update_insurance(
            DummySession(), TENANT, "ins-1", schemas.InsuranceUpdate(expiry_date=date(2024, 12, 1))
        )

    assert exc.value.status_code == 422
    assert insurance.expiry_date == date(2026, 1, 1)
