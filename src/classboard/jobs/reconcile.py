"""Background scheduler for nightly ledger reconciliation."""

from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI
from starlette.concurrency import run_in_threadpool

from ..core.config import get_settings
from ..core.database import SessionLocal
from ..services.reconcile_service import run_reconcile

logger = logging.getLogger(__name__)


def _reconcile_with_app(app: FastAPI) -> dict[str, int]:
    session = SessionLocal()
    try:
        summary = run_reconcile(
            session,
            cache=getattr(app.state, "leaderboard_cache", None),
            broker=getattr(app.state, "leaderboard_broker", None),
        )
        logger.info("ledger reconciliation completed: %s", summary)
        return summary
    except Exception:  # pragma: no cover - safeguard for background job
        session.rollback()
        logger.exception("ledger reconciliation job failed")
        raise
    finally:
        session.close()


def register_scheduler(app: FastAPI) -> AsyncIOScheduler:
    """Attach APScheduler lifecycle hooks to the FastAPI app."""

    settings = get_settings()
    scheduler = AsyncIOScheduler(timezone="UTC")

    async def _scheduled_job() -> None:
        await run_in_threadpool(_reconcile_with_app, app)

    scheduler.add_job(
        _scheduled_job,
        "cron",
        hour=settings.reconcile_hour,
        minute=0,
        id="ledger_reconcile",
        misfire_grace_time=3600,
        coalesce=True,
    )

    @app.on_event("startup")
    async def start_scheduler() -> None:
        if settings.reconcile_enabled and not scheduler.running:
            scheduler.start()
            logger.info("ledger reconciliation scheduler started")

    @app.on_event("shutdown")
    async def shutdown_scheduler() -> None:
        if scheduler.running:
            scheduler.shutdown(wait=False)
            logger.info("ledger reconciliation scheduler stopped")

    return scheduler


def run_reconcile_once() -> dict[str, int]:
    """Convenience helper to run the reconciliation synchronously for manual runs."""

    session = SessionLocal()
    try:
        return run_reconcile(session)
    finally:
        session.close()
