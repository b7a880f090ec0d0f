"""Standalone scheduler process for the daily coaching run."""
from __future__ import annotations

import argparse
import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from filelock import FileLock

from app.config import get_settings
from app.database import run_migrations
from app.logging_config import configure_logging
from app.models.schemas import DailyCoachReport
from app.services.coach_pipeline import CoachPipeline, RunCache
from app.services.intervals_service import UpstreamUnavailableError
from app.services.run_marker import RunMarkerStore


logger = logging.getLogger("scheduler")


def acquire_lock(lock_path: Path) -> FileLock:
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    lock = FileLock(str(lock_path))
    lock.acquire(timeout=0)
    return lock


def summarize_report(report: DailyCoachReport) -> Dict[str, Any]:
    """Compact payload stored alongside the run marker."""

    return {
        "workout_type": report.decision.workout_type,
        "max_intensity": report.decision.max_intensity,
        "is_rest_day": report.decision.is_rest_day,
        "phase": report.phase.phase,
        "advisor_enhanced": report.decision.advisor_enhanced,
        "alerts": [name for name, _ in report.advisories.active()],
    }


async def run_coach_tick(
    now: datetime | None = None,
    pipeline_factory: Callable[[], CoachPipeline] = CoachPipeline,
    markers: RunMarkerStore | None = None,
) -> str:
    """
    One scheduler tick.

    Returns:
        str: "already-ran", "too-early", "waiting-for-data", "failed" or "completed"
    """
    settings = get_settings()
    now = now or datetime.now()
    today = now.date()
    markers = markers or RunMarkerStore()

    if markers.has_run_today(today):
        logger.info("Coach already ran for %s; skipping tick", today.isoformat())
        return "already-ran"

    if now.hour < settings.scheduler_hour:
        logger.debug("Before start hour %02d:00; skipping tick", settings.scheduler_hour)
        return "too-early"

    start = datetime.now(timezone.utc)
    pipeline = pipeline_factory()
    cache = RunCache()

    ready = await asyncio.to_thread(pipeline.is_recovery_data_ready, today, cache)
    if not ready:
        if now.hour < settings.scheduler_deadline_hour:
            logger.info(
                "Recovery data for %s not synced yet; retrying until %02d:00",
                today.isoformat(),
                settings.scheduler_deadline_hour,
            )
            return "waiting-for-data"
        logger.warning("Recovery data still missing at deadline; running with latest available data")

    try:
        report = await asyncio.to_thread(pipeline.run, today, cache)
    except UpstreamUnavailableError as err:
        logger.warning("Coach run for %s aborted: %s", today.isoformat(), err)
        return "failed"
    except Exception:
        logger.exception("Coach run for %s failed", today.isoformat())
        return "failed"

    summary = summarize_report(report)
    markers.mark_run_complete(today, summary)

    elapsed = (datetime.now(timezone.utc) - start).total_seconds()
    logger.info(
        "Coach run for %s finished in %.2fs | workout=%s intensity<=%d phase=%s alerts=%s",
        today.isoformat(),
        elapsed,
        summary["workout_type"],
        summary["max_intensity"],
        summary["phase"],
        ", ".join(summary["alerts"]) or "none",
    )
    return "completed"


async def run_once() -> None:
    await run_coach_tick()


async def main(run_now: bool) -> None:
    configure_logging()
    settings = get_settings()
    run_migrations()

    scheduler_log = settings.log_dir / "scheduler.log"
    if not any(isinstance(h, logging.FileHandler) and getattr(h, "baseFilename", "") == str(scheduler_log) for h in logger.handlers):
        handler = logging.FileHandler(scheduler_log, encoding="utf-8")
        handler.setFormatter(logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s"))
        logger.addHandler(handler)

    lock_path = settings.scheduler_lock_file
    lock = acquire_lock(lock_path)
    logger.info("Acquired scheduler lock at %s", lock_path)
    try:
        if run_now:
            await run_once()
            return

        scheduler = AsyncIOScheduler()
        scheduler.add_job(
            run_coach_tick,
            "interval",
            minutes=settings.scheduler_poll_minutes,
            next_run_time=datetime.now(),
            max_instances=1,
            coalesce=True,
        )
        scheduler.start()

        logger.info(
            "Scheduler running (every %d min from %02d:00, deadline %02d:00). Press Ctrl+C to exit.",
            settings.scheduler_poll_minutes,
            settings.scheduler_hour,
            settings.scheduler_deadline_hour,
        )
        await asyncio.Event().wait()
    finally:
        lock.release()
        logger.info("Released scheduler lock at %s", lock_path)
        if lock_path.exists():
            lock_path.unlink()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run scheduler process")
    parser.add_argument("--run-now", action="store_true", help="Execute one tick immediately and exit")
    args = parser.parse_args()

    try:
        asyncio.run(main(run_now=args.run_now))
    except TimeoutError:
        logger.warning("Scheduler already running; exiting.")
