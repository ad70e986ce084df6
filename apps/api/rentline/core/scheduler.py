"""Periodic jobs: the insurance expiry sweep and end-of-term lease closing."""
from __future__ import annotations

import logging
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from ..db.session import get_session_factory
from ..services.insurance import run_insurance_expiry_sweep
from ..services.leases import terminate_ended_leases
from .config import settings

logger = logging.getLogger(__name__)

INSURANCE_SWEEP_JOB = "insurance_expiry_sweep"
LEASE_END_OF_TERM_JOB = "lease_end_of_term"


def configure_logging() -> None:
    """Apply the configured level to the root logger."""

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def insurance_sweep_job() -> None:
    await run_insurance_expiry_sweep(get_session_factory(), datetime.now(timezone.utc))


async def lease_end_of_term_job() -> None:
    try:
        await terminate_ended_leases(get_session_factory(), datetime.now(timezone.utc))
    except Exception:
        logger.exception("End-of-term lease job failed")


def build_scheduler() -> AsyncIOScheduler:
    """Create the scheduler with both daily jobs registered (UTC)."""

    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        insurance_sweep_job,
        trigger=CronTrigger(
            hour=settings.insurance_sweep_hour,
            minute=settings.insurance_sweep_minute,
            timezone="UTC",
        ),
        id=INSURANCE_SWEEP_JOB,
        name="Daily insurance expiry sweep",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    scheduler.add_job(
        lease_end_of_term_job,
        trigger=CronTrigger(
            hour=settings.lease_end_of_term_hour,
            minute=settings.lease_end_of_term_minute,
            timezone="UTC",
        ),
        id=LEASE_END_OF_TERM_JOB,
        name="Terminate leases past their end date",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    return scheduler
